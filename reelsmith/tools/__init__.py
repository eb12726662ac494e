"""Tools the agents can call, and the client that forwards their side effects."""
