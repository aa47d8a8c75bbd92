"""Chess opening trainer: checks moves against a book tree of opening lines."""
