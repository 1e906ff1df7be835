"""Expert runtime.

A checkpointed state machine that drives one LLM-backed expert through
generate, call-tools and resolve steps, delegating to other experts and
pausing for human input when needed.
"""
