import logging
import json
from datetime import datetime
from typing import Dict, Any
from pathlib import Path


class StructuredLogger:
    """Structured logger for the conversion agent"""

    def __init__(self):
        self.logger = logging.getLogger("conversion_agent")
        self.logger.setLevel(logging.INFO)

        if not self.logger.handlers:
            self._configure_handlers()

    def _configure_handlers(self) -> None:
        """Configure logger handlers for console and file outputs."""
        formatter = logging.Formatter(
            '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
        )

        console_handler = logging.StreamHandler()
        console_handler.setFormatter(formatter)
        self.logger.addHandler(console_handler)

        log_dir = Path(__file__).resolve().parents[2] / "logs"
        log_dir.mkdir(parents=True, exist_ok=True)

        info_log_path = log_dir / "conversion_service.log"
        error_log_path = log_dir / "conversion_service_error.log"

        info_handler = logging.FileHandler(info_log_path, encoding="utf-8")
        info_handler.setLevel(logging.INFO)
        info_handler.setFormatter(formatter)

        error_handler = logging.FileHandler(error_log_path, encoding="utf-8")
        error_handler.setLevel(logging.ERROR)
        error_handler.setFormatter(formatter)

        self.logger.addHandler(info_handler)
        self.logger.addHandler(error_handler)
        self.logger.propagate = False

    def _payload(self, key: str, value: str, data: Dict[str, Any] = None) -> str:
        log_data = {
            "timestamp": datetime.utcnow().isoformat(),
            key: value,
            "agent": "conversion_agent"
        }
        if data:
            log_data.update(data)
        return json.dumps(log_data, default=str)

    def log_step(self, step: str, data: Dict[str, Any] = None):
        """Log a processing step"""
        self.logger.info(f"STEP: {self._payload('step', step, data)}")

    def log_warning(self, warning_type: str, data: Dict[str, Any] = None):
        """Log a non-fatal problem"""
        self.logger.warning(f"WARNING: {self._payload('warning', warning_type, data)}")

    def log_error(self, error_type: str, data: Dict[str, Any] = None):
        """Log an error"""
        self.logger.error(f"ERROR: {self._payload('error', error_type, data)}")

    def log_upload_staged(self, generated_name: str, original_name: str, size_bytes: int):
        self.log_step("upload_staged", {
            "generated_name": generated_name,
            "original_name": original_name,
            "size_bytes": size_bytes
        })

    def log_conversion_completed(self, generated_id: str, pdf_path: str, process_time: float):
        self.log_step("conversion_completed", {
            "generated_id": generated_id,
            "pdf_path": pdf_path,
            "process_time": process_time
        })

    def log_sweep(self, report: Dict[str, Any]):
        """Log a retention sweep summary"""
        self.log_step("retention_sweep_completed", report)


# Global logger instance
logger = StructuredLogger()
