from spuff_agent.runtime.tail import LogFollower, format_sse, read_last_lines

__all__ = ["LogFollower", "format_sse", "read_last_lines"]
