"""Message understanding layer for OrderDesk.

Contains the pydantic contracts (``models``) and the natural language
engine (``nl_engine``) that classifies inbound messages and extracts
order items and change requests from them.
"""
