"""
Framework adapters: translate an agent framework's events into AG-UI events.
"""
