"""
E-Learning Payments Package - DSP (Digital Solutions Platform)

Dieses Paket enthält die Zahlungsabwicklung über Chapa.

Struktur:
- models.py: Zahlungen und Auszahlungsstatus
- services.py: Checkout, Verifizierung und atomare Gutschrift
- payouts.py: Auszahlungen an Instructors
- views.py / urls.py: REST-Endpunkte

Author: DSP Development Team
Version: 1.0.0
"""
