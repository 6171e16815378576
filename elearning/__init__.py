"""
E-Learning Package - DSP (Digital Solutions Platform)

Dieses Paket enthält die Module der Lernplattform.

Features:
- Benutzerprofile mit Rollen und Einnahmen-Konto für Instructors
- Kurse und Einschreibungen
- Zahlungsabwicklung über Chapa mit atomarer Gutschrift
- Auszahlungsverwaltung für Instructors

Struktur:
- users/: Benutzerprofile und Authentifizierung
- courses/: Kurse und Einschreibungen
- payments/: Zahlungen, Verifizierung und Auszahlungen
- tests/: Tests nach Bereich

Author: DSP Development Team
Created: 10.07.2025
Version: 1.0.0
"""
