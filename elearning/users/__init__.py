"""
E-Learning Users Package - DSP (Digital Solutions Platform)

Dieses Paket enthält die Benutzerprofile des E-Learning-Systems.

Features:
- Benutzerprofile mit Rolle (Student, Instructor, Admin)
- Einnahmen-Konto für Instructors, gutgeschrieben bei erfolgreichen Zahlungen
- Automatische Profilerstellung durch Django-Signale
- JWT-Tokens mit Rollen-Claim

Struktur:
- models.py: Benutzerprofile und Signal-Handler
- serializers.py: JWT-Serialisierung
- views/: Authentifizierungs-Views

Author: DSP Development Team
Created: 10.07.2025
Version: 1.0.0
"""
