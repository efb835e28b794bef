"""Authentication: session signal, tokens and profile bootstrap."""
