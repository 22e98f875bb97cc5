"""SQL access objects; each takes an open aiosqlite connection per call."""
