from spuff_agent.api.routes import register_agent_routes

__all__ = ["register_agent_routes"]
