"""
Infrastructure Layer
=====================

Low-level technical concerns shared by the bounded contexts:
- Database engine and session management
"""
