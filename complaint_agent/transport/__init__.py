from complaint_agent.transport.gateway import create_app

__all__ = ["create_app"]
