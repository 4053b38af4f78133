"""
Shared Infrastructure
=====================

Low-level technical concerns:
- Structured JSON logging
- Grafana OTLP metrics export
"""
