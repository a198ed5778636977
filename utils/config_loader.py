#!/usr/bin/env python3
# -*- coding: utf-8 -*-

"""
@file config_loader.py
@brief Модуль загрузки конфигурации воркера
@details Загружает конфигурацию из YAML, JSON или переменных окружения
@author Monitoring Module
@date 2025-11-09
"""

import os
import json
from pathlib import Path
from typing import Dict, Any, Optional

import yaml


def load_yaml_config(file_path: str) -> Dict[str, Any]:
    """
    @brief Загружает конфигурацию из YAML файла
    @param file_path Путь к YAML файлу
    @return Словарь с конфигурацией
    @throws FileNotFoundError Если файл не найден
    @throws yaml.YAMLError При ошибках парсинга YAML
    """
    with open(file_path, 'r', encoding='utf-8') as f:
        config = yaml.safe_load(f)
    return config if config else {}


def load_json_config(file_path: str) -> Dict[str, Any]:
    """
    @brief Загружает конфигурацию из JSON файла
    @param file_path Путь к JSON файлу
    @return Словарь с конфигурацией
    @throws FileNotFoundError Если файл не найден
    @throws json.JSONDecodeError При ошибках парсинга JSON
    """
    with open(file_path, 'r', encoding='utf-8') as f:
        config = json.load(f)
    return config if config else {}


def load_env_config() -> Dict[str, Any]:
    """
    @brief Загружает конфигурацию из переменных окружения
    @return Словарь с конфигурацией из переменных окружения
    """
    config: Dict[str, Any] = {}

    # UPTIME_CONFIG_PATH - путь к конфигу
    if os.getenv('UPTIME_CONFIG_PATH'):
        config['config_path'] = os.getenv('UPTIME_CONFIG_PATH')

    # UPTIME_DATA_DIR - каталог с записями проверок
    if os.getenv('UPTIME_DATA_DIR'):
        config.setdefault('storage', {})['data_dir'] = os.getenv('UPTIME_DATA_DIR')

    # UPTIME_LOGS_DIR - каталог с логами проверок и архивами
    if os.getenv('UPTIME_LOGS_DIR'):
        config.setdefault('storage', {})['logs_dir'] = os.getenv('UPTIME_LOGS_DIR')

    # UPTIME_LOG_LEVEL - уровень логирования
    if os.getenv('UPTIME_LOG_LEVEL'):
        config.setdefault('logging', {})['level'] = os.getenv('UPTIME_LOG_LEVEL')

    # UPTIME_CHECK_INTERVAL - период тика проверок, сек
    if os.getenv('UPTIME_CHECK_INTERVAL'):
        config.setdefault('worker', {})['check_interval_sec'] = int(os.environ['UPTIME_CHECK_INTERVAL'])

    return config


def merge_configs(base: Dict[str, Any], override: Dict[str, Any]) -> Dict[str, Any]:
    """
    @brief Рекурсивно объединяет две конфигурации
    @param base Базовая конфигурация
    @param override Конфигурация для переопределения
    @return Объединенная конфигурация
    """
    result = base.copy()

    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = merge_configs(result[key], value)
        else:
            result[key] = value

    return result


def get_default_config() -> Dict[str, Any]:
    """
    @brief Возвращает конфигурацию по умолчанию
    @return Словарь с конфигурацией по умолчанию
    """
    return {
        'logging': {
            'level': 'INFO',
            'format': '%(asctime)s - %(name)s - %(levelname)s - %(message)s',
            'file': 'uptime-worker.log'
        },
        'storage': {
            'data_dir': '.data',
            'logs_dir': '.logs',
            'checks_category': 'checks',
        },
        'worker': {
            'check_interval_sec': 60,
            'rotation_interval_sec': 60 * 60 * 24,
            'run_on_start': True,
            'rotate_on_start': True,
            'guard_in_flight': False,
        },
        'probe': {
            'user_agent': 'uptime-watcher/1.0',
            'verify_ssl': True,
        },
        'notifications': {
            'enabled': False,
            'common': {
                'tags': [],
                'include_tags': False,
                'retry_attempts': 1,
            },
            'telegram': {
                'enabled': False,
                'bot_token': '',
                'chat_id': '',
                'parse_mode': None,
                'message_template': None,
                'timeout_sec': 5,
            },
            'discord': {
                'enabled': False,
                'webhook_url': '',
                'username': None,
                'message_template': None,
                'timeout_sec': 5,
            },
            'twilio': {
                'enabled': False,
                'account_sid': '',
                'auth_token': '',
                'from_phone': '',
                'default_to': '',
                'country_code': '',
                'timeout_sec': 5,
            },
        },
    }


def load_config(config_path: Optional[str] = None) -> Dict[str, Any]:
    """
    @brief Загружает полную конфигурацию из различных источников
    @param config_path Путь к файлу конфигурации (опционально)
    @return Словарь с полной конфигурацией
    @throws Exception При ошибках загрузки конфигурации
    """
    # Начинаем с конфигурации по умолчанию
    config = get_default_config()

    # Определяем путь к конфигу
    if config_path is None:
        # Ищем config.yaml или config.json в текущей директории
        if Path('config.yaml').exists():
            config_path = 'config.yaml'
        elif Path('config.yml').exists():
            config_path = 'config.yml'
        elif Path('config.json').exists():
            config_path = 'config.json'
        else:
            # Проверяем переменную окружения
            config_path = os.getenv('UPTIME_CONFIG_PATH')

    # Загружаем файл конфигурации
    if config_path and Path(config_path).exists():
        file_ext = Path(config_path).suffix.lower()

        try:
            if file_ext in ['.yaml', '.yml']:
                file_config = load_yaml_config(config_path)
            elif file_ext == '.json':
                file_config = load_json_config(config_path)
            else:
                raise ValueError(f"Unsupported config format: {file_ext}")

            config = merge_configs(config, file_config)
        except Exception as e:
            raise Exception(f"Error loading config from {config_path}: {e}")

    # Переопределяем переменными окружения
    env_config = load_env_config()
    if env_config:
        config = merge_configs(config, env_config)

    return config
