"""Tek Riders 认证服务。"""

__version__ = "1.0.0"
