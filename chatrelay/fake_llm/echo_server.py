from fastapi import FastAPI, Header, Query
from fastapi.responses import JSONResponse, Response, StreamingResponse
from pydantic import BaseModel, Field
from typing import List, Optional, Any, Dict, Iterator
import time
import json
import uuid


app = FastAPI(title="Fake Echo LLM (OpenAI + Gemini compatible)", version="0.2.0")

FAKE_SEARCH_RESULTS = [
    {"title": "Example Domain", "url": "https://example.com/"},
    {"title": "Python", "url": "https://www.python.org/"},
]

FAKE_MODELS = ["gpt-4-x", "gpt-4o-mini", "gpt-3.5", "o1-preview", "echo-001"]


# ---- Schemas (minimal) ----
class ChatMessage(BaseModel):
    role: str
    content: Any = ""


class ChatCompletionsIn(BaseModel):
    model: Optional[str] = Field(default="echo-001")
    messages: List[ChatMessage] = Field(default_factory=list)
    temperature: Optional[float] = 0.0
    stream: Optional[bool] = False
    tools: Optional[List[Dict[str, Any]]] = None


class GeminiPart(BaseModel):
    text: Optional[str] = None


class GeminiContent(BaseModel):
    role: Optional[str] = "user"
    parts: List[GeminiPart] = Field(default_factory=list)


class GenerateContentIn(BaseModel):
    contents: List[GeminiContent] = Field(default_factory=list)
    tools: Optional[List[Dict[str, Any]]] = None


def _message_text(content: Any) -> str:
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        return "".join(
            part.get("text", "") for part in content if isinstance(part, dict)
        )
    return ""


def _split_stream_chunks(text: str) -> List[str]:
    """Split on single spaces so every piece keeps its trailing separator."""
    if not text:
        return []
    pieces = text.split(" ")
    chunks = [piece + " " for piece in pieces[:-1]]
    chunks.append(pieces[-1])
    return [chunk for chunk in chunks if chunk]


def _has_tool(tools: Optional[List[Dict[str, Any]]], name: str) -> bool:
    for tool in tools or []:
        if name in tool:
            return True
        function = tool.get("function")
        if isinstance(function, dict) and function.get("name") == name:
            return True
    return False


def _iter_chat_completions_sse(resp_id: str, model: str, content: str) -> Iterator[str]:
    now = int(time.time())
    for piece in _split_stream_chunks(content):
        payload = {
            "id": resp_id,
            "object": "chat.completion.chunk",
            "created": now,
            "model": model,
            "choices": [{"index": 0, "delta": {"content": piece}, "finish_reason": None}],
        }
        yield f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"

    final_payload = {
        "id": resp_id,
        "object": "chat.completion.chunk",
        "created": now,
        "model": model,
        "choices": [{"index": 0, "delta": {}, "finish_reason": "stop"}],
    }
    yield f"data: {json.dumps(final_payload, ensure_ascii=False)}\n\n"
    yield "data: [DONE]\n\n"


def _iter_generate_content_sse(text: str) -> Iterator[str]:
    for piece in _split_stream_chunks(text):
        payload = {"candidates": [{"index": 0, "content": {"role": "model", "parts": [{"text": piece}]}}]}
        yield f"data: {json.dumps(payload, ensure_ascii=False)}\n\n"


@app.get("/v1/models")
def list_models():
    now = int(time.time())
    return JSONResponse(
        {
            "object": "list",
            "data": [
                {"id": model_id, "object": "model", "created": now, "owned_by": "local"}
                for model_id in FAKE_MODELS
            ],
        },
        headers={"WWW-Authenticate": 'Bearer realm="fake"', "X-Request-Id": "req-echo"},
    )


@app.post("/v1/chat/completions")
def chat_completions(inp: ChatCompletionsIn):
    # Echo last user content; fallback to concat
    last_user = next((_message_text(m.content) for m in reversed(inp.messages) if m.role == "user"), None)
    if last_user is None:
        last_user = "\n\n".join([_message_text(m.content) for m in inp.messages])
    resp_id = f"chatcmpl-{uuid.uuid4().hex[:12]}"
    if inp.stream:
        return StreamingResponse(
            _iter_chat_completions_sse(
                resp_id=resp_id,
                model=inp.model or "echo-001",
                content=last_user,
            ),
            media_type="text/event-stream",
        )
    now = int(time.time())
    body: Dict[str, Any] = {
        "id": resp_id,
        "object": "chat.completion",
        "created": now,
        "model": inp.model or "echo-001",
        "choices": [
            {
                "index": 0,
                "message": {"role": "assistant", "content": last_user},
                "finish_reason": "stop",
            }
        ],
        "usage": {"prompt_tokens": 0, "completion_tokens": 0, "total_tokens": 0},
    }
    if _has_tool(inp.tools, "web_search"):
        body["search_results"] = FAKE_SEARCH_RESULTS
    return body


@app.get("/dashboard/billing/usage")
def billing_usage():
    return Response(status_code=302, headers={"Location": "https://login.example.com/"})


@app.post("/v1beta/models/{model}:generateContent")
def generate_content(model: str, inp: GenerateContentIn):
    text = "".join(part.text or "" for content in inp.contents for part in content.parts)
    candidate: Dict[str, Any] = {
        "index": 0,
        "content": {"role": "model", "parts": [{"text": text}]},
        "finishReason": "STOP",
    }
    if _has_tool(inp.tools, "google_search"):
        candidate["groundingMetadata"] = {
            "groundingChunks": [
                {"web": {"uri": result["url"], "title": result["title"]}}
                for result in FAKE_SEARCH_RESULTS
            ]
        }
    return {"candidates": [candidate], "modelVersion": model}


@app.post("/v1beta/models/{model}:streamGenerateContent")
def stream_generate_content(model: str, inp: GenerateContentIn, alt: Optional[str] = Query(None)):
    text = "".join(part.text or "" for content in inp.contents for part in content.parts)
    if alt != "sse":
        return [{"candidates": [{"index": 0, "content": {"role": "model", "parts": [{"text": text}]}}]}]
    return StreamingResponse(_iter_generate_content_sse(text), media_type="text/event-stream")


@app.get("/customsearch/v1")
def custom_search(
    q: str = Query(...),
    cx: str = Query(...),
    x_goog_api_key: Optional[str] = Header(None),
):
    if not x_goog_api_key:
        return JSONResponse({"error": {"code": 403, "message": "API key missing"}}, status_code=403)
    return {
        "kind": "customsearch#search",
        "queries": {"request": [{"searchTerms": q, "cx": cx}]},
        "items": [
            {"title": result["title"], "link": result["url"]} for result in FAKE_SEARCH_RESULTS
        ],
    }


@app.get("/v1/health")
def health():
    return {"status": "ok"}
