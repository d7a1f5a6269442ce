"""Chat assistant: conversational help and code fixes."""
