"""
Moderation app.

Member reports, formal incident reports with evidence, and account
suspensions. Every list here is admin-only; filing a report is open to
any authenticated member.
"""
