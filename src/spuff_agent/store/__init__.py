from spuff_agent.store.exec_log_store import ExecLogStore, format_exec_log_line, parse_exec_log_line

__all__ = ["ExecLogStore", "format_exec_log_line", "parse_exec_log_line"]
