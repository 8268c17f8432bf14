"""Parallel execution of natural-language tasks on external CLI agents.

Each task runs as its own child process of a backend CLI (copilot, claude)
with file context folded into the prompt, a resolved timeout, and one
fixed-delay retry for transient failures. A batch waits for every task and
reports results in input order; nothing escapes as a bare exception except
request validation errors raised before any process starts.

The engine is single-threaded asyncio: concurrency comes from overlapping
waits on independent child processes, so no broker or worker pool is
involved. The only shared mutable state is the active task set used for a
bounded drain on shutdown.
"""
