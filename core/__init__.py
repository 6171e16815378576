"""
Core Package - DSP (Digital Solutions Platform)

Dieses Paket enthält die anwendungsübergreifende Infrastruktur.

Struktur:
- exceptions.py: Gemeinsame Fehlerhierarchie mit HTTP-Statuscodes
- chapa_integration/: Client für das Chapa Payment Gateway
- rate_limiting/: Ingress Guard (Rate Limiting als Middleware)

Author: DSP Development Team
Created: 10.07.2025
Version: 1.0.0
"""
