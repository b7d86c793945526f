"""Generation backends: invocation, retry, and primary/fallback routing.

Each backend is an external LLM command-line tool. The invoker runs one
call, the retry policy repeats transient failures, and the router moves
to the fallback provider when the primary gives up.
"""
