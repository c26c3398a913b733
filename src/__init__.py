"""Multi-agent plan-and-execute orchestration.

Packages:
- registry: capability cards, ranked discovery, persistence and the MCP-style server
- orchestrator: planning, wave execution over a task DAG, re-planning and checkpoints
- a2a: JSON-RPC client for calling worker agents
- utils: config, logging, resilience and LLM helpers
"""
