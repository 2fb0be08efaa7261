"""
Document ingestion and command line for the RTF RAG project.

This package is responsible for:
- Loading settings from the environment / .env file
- Converting RTF (or plain text) documents to text
- Providing a CLI to index documents, search an index and ask questions
"""
