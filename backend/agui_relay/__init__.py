"""
AG-UI event relay: streams an agent run to a front-end as AG-UI protocol events.
"""
__version__ = "1.0.0"
