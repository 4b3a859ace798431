"""
NutriCoach Relay package.

Provides:
- A FastAPI chat relay that injects the nutrition-coach persona
- Upstream dispatch to an OpenAI-compatible API with one-shot model fallback
- SSE pass-through or buffered JSON replies, selected by configuration
"""
