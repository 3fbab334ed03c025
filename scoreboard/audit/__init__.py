from scoreboard.audit.logger import AuditAction, format_action_label, list_audit_log, log_admin_action

__all__ = ['AuditAction', 'format_action_label', 'list_audit_log', 'log_admin_action']
