from __future__ import annotations

import httpx
import streamlit as st
from loguru import logger

from chatrelay.client import (
    DEFAULT_URL,
    ReplyTimeout,
    fetch_test_reply,
    last_messages,
    send_and_wait_sync,
    server_status,
)
from chatrelay.personas import PersonaRegistry


PERSONA_IDS = PersonaRegistry().ids()
AVATARS = {"user": "🟦", "bot": "🟩"}


def render_message(m: dict) -> None:
    role = "user" if m.get("sender") == "user" else "assistant"
    label = m.get("personaLabel") or m.get("persona", "")
    with st.chat_message(role, avatar=AVATARS.get(m.get("sender"), "💬")):
        st.markdown(
            f"{m.get('text', '')}\n\n"
            f"<span style='color:gray;font-size:smaller'>[{label}] {m.get('time', '')}</span>",
            unsafe_allow_html=True,
        )


st.set_page_config(page_title="Chat Relay Console", page_icon="💬", layout="wide")

st.sidebar.title("Chat Relay – Controls")
base_url = st.sidebar.text_input("Server URL", value=DEFAULT_URL)
persona = st.sidebar.selectbox("Persona", PERSONA_IDS, index=0)
use_llm = st.sidebar.checkbox("Use external model (opt-in)", value=False)
consent = st.sidebar.checkbox("Medical consent (Dr. Gupta)", value=False)
tail_n = st.sidebar.slider("History tail", min_value=5, max_value=50, value=20, step=5)

status_box = st.sidebar.container()
try:
    status = server_status(base_url)
    status_box.success("Server up")
    status_box.write(f"Gemini configured: {status.get('geminiConfigured')}")
    status_box.write(f"OpenAI configured: {status.get('openaiConfigured')}")
except httpx.HTTPError as e:
    logger.warning(f"console_status_failed | {e}")
    status_box.error(f"Server unreachable at {base_url}")

st.title("Live Persona Chat")
tab_live, tab_playground = st.tabs(["Live", "Heuristic playground"])

with tab_live:
    text = st.text_input("Message", value="", key="live_text")
    if st.button("Send", type="primary") and text.strip():
        with st.spinner("Waiting for reply..."):
            try:
                result = send_and_wait_sync(
                    base_url, text, persona=persona, use_llm=use_llm, medical_consent=consent, timeout=30.0
                )
                reply = result["reply"]
                st.success(f"{reply.get('personaLabel', persona)}: {reply.get('text', '')}")
            except ReplyTimeout as e:
                st.error(str(e))
            except Exception as e:
                logger.error(f"console_send_failed | {e}")
                st.error(f"Send failed: {e}")

    try:
        tail = last_messages(base_url, n=tail_n)
        st.caption(f"{tail.get('count', 0)} messages in store; showing last {len(tail.get('last', []))}")
        for m in tail.get("last", []):
            render_message(m)
    except httpx.HTTPError:
        st.info("History unavailable; start the server with `python run_server.py`.")

with tab_playground:
    q = st.text_input("Query", value="I feel sad and overwhelmed", key="playground_q")
    playground_persona = st.text_input("Persona id (any string)", value=persona, key="playground_persona")
    if st.button("Get heuristic reply"):
        try:
            res = fetch_test_reply(base_url, q=q, persona=playground_persona or None)
            st.json(res)
        except httpx.HTTPError as e:
            st.error(f"Request failed: {e}")
