"""Tests for the logfire tracing decorators."""

from usufruit.observability import trace_resource, trace_tool


async def echo_tool(arguments: dict) -> dict:
    return {"content": [{"type": "text", "text": "ok"}], "data": arguments}


async def failing_tool(arguments: dict) -> dict:
    return {"isError": True, "error": {"kind": "forbidden", "status": 403, "message": "no"}}


class TestTraceTool:
    async def test_span_skips_credentials(self, capfire):
        traced = trace_tool("update_library")(echo_tool)

        result = await traced(
            {"library_id": "library_abc", "secret_key": "s3cret-value", "name": "Shed"}
        )

        assert result["data"]["name"] == "Shed"
        spans = capfire.exporter.exported_spans_as_dict()
        attributes = next(s["attributes"] for s in spans if s["name"].startswith("tool."))
        assert attributes["input.library_id"] == "library_abc"
        assert attributes["tool.success"] is True
        assert "s3cret-value" not in str(spans)

    async def test_error_response_marks_span(self, capfire):
        await trace_tool("delete_book")(failing_tool)({})

        spans = capfire.exporter.exported_spans_as_dict()
        attributes = next(s["attributes"] for s in spans if s["name"].startswith("tool."))
        assert attributes["tool.success"] is False
        assert attributes["tool.error_kind"] == "forbidden"
        assert attributes["tool_category"] == "catalog"

    async def test_long_arguments_are_truncated(self, capfire):
        await trace_tool("create_book")(echo_tool)({"description": "x" * 5000})

        spans = capfire.exporter.exported_spans_as_dict()
        attributes = next(s["attributes"] for s in spans if s["name"].startswith("tool."))
        assert len(attributes["input.description"]) == 1000


class TestTraceResource:
    async def test_passes_template_arguments(self, capfire):
        async def get_book(library_id: str, book_id: str) -> dict:
            return {"library_id": library_id, "book_id": book_id}

        traced = trace_resource("Book Details")(get_book)
        result = await traced(library_id="library_abc", book_id="book_xyz")

        assert result == {"library_id": "library_abc", "book_id": "book_xyz"}
        spans = capfire.exporter.exported_spans_as_dict()
        attributes = next(s["attributes"] for s in spans if s["name"].startswith("resource."))
        assert attributes["resource.book_id"] == "book_xyz"
