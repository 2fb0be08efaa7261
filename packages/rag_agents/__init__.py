"""Question answering on top of the retrieval core: chat client, history and agent."""
