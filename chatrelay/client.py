from __future__ import annotations

import asyncio
from typing import Any, Dict, List, Optional

import httpx
import socketio
from loguru import logger


DEFAULT_URL = "http://localhost:3001"


class ReplyTimeout(RuntimeError):
    pass


def get_json(base_url: str, path: str, timeout: float = 10.0, **params: Any) -> Dict[str, Any]:
    """GET one of the debug endpoints and return its JSON body."""
    url = base_url.rstrip("/") + path
    res = httpx.get(url, params={k: v for k, v in params.items() if v is not None}, timeout=timeout)
    res.raise_for_status()
    return res.json()


async def send_and_wait(
    url: str,
    text: str,
    persona: str = "zoya",
    use_llm: bool = False,
    medical_consent: bool = False,
    timeout: float = 8.0,
) -> Dict[str, Any]:
    """Connect, send one message, and return the first bot reply for `persona`.

    Returns {"reply": <message dict>, "history": <chatHistory at connect>}.
    Raises ReplyTimeout when no reply arrives within `timeout` seconds.
    """
    sio = socketio.AsyncClient(reconnection=False)
    loop = asyncio.get_running_loop()
    reply: asyncio.Future = loop.create_future()
    history: List[Dict[str, Any]] = []

    async def on_history(data: Any) -> None:
        history[:] = list(data or [])

    async def on_message(m: Any) -> None:
        logger.debug(f"smoke_message | {m}")
        if isinstance(m, dict) and m.get("sender") == "bot" and m.get("persona") == persona and not reply.done():
            reply.set_result(m)

    sio.on("chatHistory", on_history)
    sio.on("message", on_message)

    await sio.connect(url)
    logger.info(f"smoke_connected | url={url} sid={sio.sid}")
    try:
        await sio.emit("setLLM", use_llm)
        await sio.emit("setMedicalConsent", medical_consent)
        payload = {"text": text, "persona": persona}
        logger.info(f"smoke_send | payload={payload}")
        await sio.emit("newMessage", payload)
        try:
            bot = await asyncio.wait_for(reply, timeout=timeout)
        except asyncio.TimeoutError as e:
            raise ReplyTimeout(f"no reply from {persona} within {timeout:.0f}s") from e
        return {"reply": bot, "history": history}
    finally:
        await sio.disconnect()


def send_and_wait_sync(url: str, text: str, persona: str = "zoya", **kwargs: Any) -> Dict[str, Any]:
    return asyncio.run(send_and_wait(url, text, persona=persona, **kwargs))


def last_messages(base_url: str = DEFAULT_URL, n: Optional[int] = None) -> Dict[str, Any]:
    return get_json(base_url, "/_lastMessages", n=n)


def fetch_test_reply(base_url: str = DEFAULT_URL, q: str = "", persona: Optional[str] = None) -> Dict[str, Any]:
    return get_json(base_url, "/_testReply", q=q, persona=persona)


def server_status(base_url: str = DEFAULT_URL) -> Dict[str, Any]:
    return get_json(base_url, "/_status")
