"""
Reminder subsystem: windows, ledger, field extraction, templates and dispatch.

Import from the submodules directly; core.config depends on
reminders.templates, so this package stays free of eager imports.
"""
