"""
Planner app.

Personal to-do lists, the school calendar with recurring events and
attendance applications, and school-wide announcements.
"""
