"""
Services Layer

Bracket engine services that:
- Accept domain inputs (session, stage/matchup/match ids, scores)
- Return domain outputs (models, dataclasses, summary dicts)
- Do NOT depend on HTTP request/response objects
- Commit only in the operations that own a transaction
"""
