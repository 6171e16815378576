"""
E-Learning Courses Package - DSP (Digital Solutions Platform)

Dieses Paket enthält Kurse und Einschreibungen des E-Learning-Systems.
Einschreibungen entstehen bei erfolgreicher Zahlung (siehe payments/).

Author: DSP Development Team
Version: 1.0.0
"""
