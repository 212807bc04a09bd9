"""
Real-time persona chat relay.

Modules:
- personas: PersonaRegistry with system prompts + display identity
- heuristics: HeuristicReplyEngine rule chains per persona
- providers: ReplyProvider adapters (Gemini over httpx, OpenAI via LangChain)
- orchestrator: ReplyOrchestrator opt-in/consent gating + fallback chain
- store: ConversationStore append-only message log
- broker: MessageBroker Socket.IO event handlers
- states: Message/ConnectionSession + enums
- app: FastAPI debug endpoints + ASGI assembly
- llm: LangChain ChatOpenAI client + message building
"""
