"""
Colored logging utilities for the OAuth app marketplace.

Every message is rendered as a "source → destination" header, a message
type and an indented key/value body, so the flow between the HTTP layer,
the store and the credential/rating components is easy to follow in a
terminal. Sensitive values are redacted before they reach any handler.
"""

import logging
import sys
from datetime import datetime
from typing import Dict, Any, Optional
from enum import Enum

from colorama import Fore, Style, init

from .config import settings

init(autoreset=True)


class ComponentType(str, Enum):
    """Marketplace system component types."""
    CLIENT = "CLIENT"
    MARKETPLACE = "MARKETPLACE"
    STORE = "MARKETPLACE-STORE"
    CREDENTIALS = "CREDENTIAL-ISSUER"
    RATINGS = "RATING-AGGREGATOR"


class MessageType(str, Enum):
    """Message types for logging."""
    REQUEST = "REQUEST"
    RESPONSE = "RESPONSE"
    ERROR = "ERROR"
    INFO = "INFO"
    CREDENTIAL_ISSUE = "CREDENTIAL-ISSUE"
    CREDENTIAL_ROTATION = "CREDENTIAL-ROTATION"
    REVIEW_SUBMISSION = "REVIEW-SUBMISSION"
    USER_AUTH = "USER-AUTH"


SENSITIVE_KEYS = ('password', 'secret', 'key')
TRUNCATED_KEYS = ('token', 'client_id', 'session')


class MarketplaceLogger:
    """
    Colored logger for marketplace message flows.

    Wraps a standard library logger named ``marketplace.<component>`` and
    formats structured messages with colors per component.
    """

    def __init__(self, component_name: str, level: Optional[str] = None):
        """
        Initialize logger for a specific component.

        Args:
            component_name: Name of the component (MARKETPLACE, MARKETPLACE-STORE, etc.)
            level: Log level name, defaults to the configured level
        """
        self.component_name = component_name.upper()
        self.colors = self._get_component_colors()

        self.logger = logging.getLogger(f"marketplace.{component_name.lower()}")
        self.logger.setLevel(level or settings.log_level)

        # Remove existing handlers to avoid duplicates
        self.logger.handlers.clear()

        handler = logging.StreamHandler(sys.stdout)
        handler.setFormatter(logging.Formatter("%(message)s"))
        self.logger.addHandler(handler)
        self.logger.propagate = False

    def _get_component_colors(self) -> Dict[str, str]:
        """Get color scheme for different components and message types."""
        return {
            'CLIENT': Fore.BLUE + Style.BRIGHT,
            'MARKETPLACE': Fore.GREEN + Style.BRIGHT,
            'MARKETPLACE-STORE': Fore.YELLOW + Style.BRIGHT,
            'CREDENTIAL-ISSUER': Fore.CYAN + Style.BRIGHT,
            'RATING-AGGREGATOR': Fore.BLUE,
            'ERROR': Fore.RED + Style.BRIGHT,
            'SUCCESS': Fore.GREEN + Style.BRIGHT,
            'INFO': Fore.CYAN,
            'HEADER': Fore.WHITE + Style.BRIGHT,
            'SEPARATOR': Fore.WHITE + Style.DIM,
            'RESET': Style.RESET_ALL
        }

    def _format_timestamp(self) -> str:
        """Format current timestamp for log messages."""
        return datetime.now().strftime("%Y-%m-%d %H:%M:%S.%f")[:-3]

    def _sanitize_data(self, data: Dict[str, Any]) -> Dict[str, Any]:
        """
        Sanitize sensitive data for logging.

        Redacts passwords and client secrets and truncates tokens and
        client identifiers to their first 10 characters.
        """
        sanitized = {}
        for key, value in data.items():
            key_lower = key.lower()

            if any(sensitive in key_lower for sensitive in SENSITIVE_KEYS):
                sanitized[key] = '[REDACTED]'
            elif any(token in key_lower for token in TRUNCATED_KEYS):
                if isinstance(value, str) and len(value) > 10:
                    sanitized[key] = f"{value[:10]}..."
                else:
                    sanitized[key] = value
            else:
                sanitized[key] = value

        return sanitized

    def log_message(self,
                    source: str,
                    destination: str,
                    message_type: str,
                    data: Dict[str, Any],
                    success: bool = True):
        """
        Log a message between two components.

        Args:
            source: Source component name
            destination: Destination component name
            message_type: Type of message (REQUEST, RESPONSE, etc.)
            data: Message data dictionary
            success: Whether the operation was successful
        """
        level = logging.INFO if success else logging.ERROR
        if not self.logger.isEnabledFor(level):
            return

        timestamp = self._format_timestamp()
        source_color = self.colors.get(source.upper(), self.colors['INFO'])
        dest_color = self.colors.get(destination.upper(), self.colors['INFO'])

        if not success:
            msg_color = self.colors['ERROR']
        elif message_type in ['RESPONSE', 'SUCCESS']:
            msg_color = self.colors['SUCCESS']
        else:
            msg_color = self.colors['INFO']

        lines = [
            f"{self.colors['HEADER']}[{timestamp}] {source_color}{source}{self.colors['RESET']} → {dest_color}{destination}{self.colors['RESET']}",
            f"{msg_color}{message_type}:{self.colors['RESET']}"
        ]
        for key, value in self._sanitize_data(data).items():
            lines.append(f"  {self.colors['INFO']}{key}:{self.colors['RESET']} {value}")
        lines.append(f"{self.colors['SEPARATOR']}{'-' * 60}{self.colors['RESET']}")

        self.logger.log(level, "\n".join(lines))

    def log_user_auth(self,
                      username: str,
                      success: bool,
                      details: Optional[Dict[str, Any]] = None):
        """
        Log user authentication attempts.

        Failed attempts are informational, not errors.
        """
        auth_data = {"username": username, "result": "SUCCESS" if success else "FAILED"}
        if details:
            auth_data.update(details)

        self.log_message(
            source=self.component_name,
            destination="USER-DATABASE",
            message_type=MessageType.USER_AUTH.value,
            data=auth_data
        )

    def log_error(self,
                  error_type: str,
                  message: str,
                  details: Optional[Dict[str, Any]] = None):
        """
        Log error messages with context.

        Args:
            error_type: Type of error
            message: Error message
            details: Additional error context
        """
        error_data = {
            "error_type": error_type,
            "message": message
        }

        if details:
            error_data.update(details)

        self.log_message(
            source=self.component_name,
            destination="ERROR-HANDLER",
            message_type=MessageType.ERROR.value,
            data=error_data,
            success=False
        )

    def log_startup(self, port: int, additional_info: Optional[Dict[str, Any]] = None):
        """Log component startup information."""
        lines = [f"{self.colors['SUCCESS']}🚀 {self.component_name} started on port {port}{self.colors['RESET']}"]
        if additional_info:
            for key, value in additional_info.items():
                lines.append(f"   {key}: {value}")
        lines.append(f"{self.colors['SEPARATOR']}{'-' * 60}{self.colors['RESET']}")

        self.logger.info("\n".join(lines))


def create_logger(component_name: str) -> MarketplaceLogger:
    """Factory function to create marketplace logger instances."""
    return MarketplaceLogger(component_name)
