"""
RAG (Retrieval Augmented Generation) query app.

Provides:
- Query and lazy chunk embedding via the configured provider
- Cosine similarity ranking over the user's own chunks
- Grounded, injection-resistant prompting
- Answer generation with daily quota enforcement
"""
