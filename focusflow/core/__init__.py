"""Agent core: providers, tool-call parsing, execution and the agent loop."""
