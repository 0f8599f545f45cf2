"""Server-sent event framing for the chat stream."""

import json

DONE_EVENT = "data: [DONE]\n\n"


def sse_content(content: str) -> str:
    return "data: " + json.dumps({"content": content}) + "\n\n"


def sse_error(error: str) -> str:
    return "data: " + json.dumps({"error": error}) + "\n\n"


def sse_done() -> str:
    return DONE_EVENT
