from html.parser import HTMLParser

from moviehub.panel import CONTENT_TYPE, render_write_panel


class _Collector(HTMLParser):
    def __init__(self):
        super().__init__()
        self.ids = set()
        self.tables = {}
        self._table = None
        self.tags = []
        self.meta_charset = None

    def handle_starttag(self, tag, attrs):
        self.tags.append(tag)
        attributes = dict(attrs)
        if "id" in attributes:
            self.ids.add(attributes["id"])
        if tag == "meta" and "charset" in attributes:
            self.meta_charset = attributes["charset"]
        if tag == "table":
            self._table = attributes.get("id")
            self.tables[self._table] = 0
        if tag == "th" and self._table is not None:
            self.tables[self._table] += 1

    def handle_endtag(self, tag):
        if tag == "table":
            self._table = None


def parse():
    collector = _Collector()
    collector.feed(render_write_panel())
    return collector


def test_panel_is_an_html_document():
    page = render_write_panel()
    assert page.lstrip().startswith("<!DOCTYPE html>")
    assert page.rstrip().endswith("</html>")


def test_panel_has_controls_and_tables():
    collector = parse()
    expected = {"startBtn", "stopBtn", "refreshBtn", "statusBadge", "logsBody", "hotspotsBody"}
    assert expected <= collector.ids


def test_panel_table_columns():
    collector = parse()
    assert collector.tables == {"logsTable": 5, "hotspotsTable": 2}


def test_panel_uses_write_endpoints():
    page = render_write_panel()
    for endpoint in ("/api/write/start", "/api/write/stop", "/api/write/status", "/api/write/hotspots"):
        assert f"'{endpoint}'" in page
    assert "REFRESH_MS = 5000" in page
    assert "setInterval(refreshData, REFRESH_MS)" in page


def test_panel_has_one_script_and_style():
    collector = parse()
    assert collector.tags.count("script") == 1
    assert collector.tags.count("style") == 1


def test_panel_charset_matches_content_type():
    collector = parse()
    assert collector.meta_charset == "UTF-8"
    assert CONTENT_TYPE.lower().endswith("charset=" + collector.meta_charset.lower())