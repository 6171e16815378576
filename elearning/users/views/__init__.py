"""
E-Learning Users Views Package - DSP (Digital Solutions Platform)

Dieses Paket enthält die Authentifizierungs-Views des E-Learning-Systems.

Features:
- JWT-basierte Authentifizierung mit Rollen-Claim für das Rate Limiting

Author: DSP Development Team
Created: 10.07.2025
Version: 1.0.0
"""

from .auth_views import CustomTokenObtainPairView
