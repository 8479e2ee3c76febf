from services.common.core.trace import TraceId


class TestTraceId:
    def test_parse_existing_header(self):
        """Full header round-trips unchanged."""
        header = "Root=1-5759e988-bd862e3fe1be46a994272793;Parent=53995c3f42cd8ad8;Sampled=1"
        trace = TraceId.parse(header)

        assert trace.root == "1-5759e988-bd862e3fe1be46a994272793"
        assert trace.parent == "53995c3f42cd8ad8"
        assert trace.sampled == "1"
        assert str(trace) == header

    def test_parse_partial_header(self):
        """Root only: nothing is invented."""
        header = "Root=1-5759e988-bd862e3fe1be46a994272793"
        trace = TraceId.parse(header)
        assert trace.parent is None
        assert trace.sampled is None
        assert str(trace) == header

    def test_unknown_fields_are_preserved(self):
        header = "Root=1-5759e988-bd862e3fe1be46a994272793;Sampled=0;Lineage=a87bd80c:0"
        trace = TraceId.parse(header)
        assert trace.extra == {"Lineage": "a87bd80c:0"}
        assert str(trace) == header

    def test_raw_id_without_root_prefix(self):
        trace = TraceId.parse("1-5759e988-bd862e3fe1be46a994272793")
        assert trace.root == "1-5759e988-bd862e3fe1be46a994272793"
        assert str(trace) == "Root=1-5759e988-bd862e3fe1be46a994272793"
