#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file __init__.py
@brief Инициализация пакета checker
@details Валидатор записи проверки и HTTP-пробер
@author Monitoring Module
@date 2025-11-09
"""

from .validator import validate_check
from .http_checker import HttpProber, ProbeSlot, build_request_url

__all__ = [
    'validate_check',
    'HttpProber',
    'ProbeSlot',
    'build_request_url',
]
