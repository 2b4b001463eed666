"""
Social graph: connections, follows, blocks and hobbies.
"""
