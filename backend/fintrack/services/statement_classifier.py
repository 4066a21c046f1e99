"""
Statement Classification Service

Wraps the external text classifier used by the import pipeline:
- extract candidate transactions from raw statement text
- suggest a category for a single transaction description

The pipeline only depends on the StatementClassifier interface, so tests
and alternative backends can plug in without touching its control flow.
"""

import json
import logging
import re
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional

import requests

from fintrack.config import settings
from fintrack.errors import ClassifierError

logger = logging.getLogger(__name__)


class StatementClassifier(ABC):
    """Narrow interface to the external classification capability."""

    @abstractmethod
    def classify_statement(self, text: str, filename: str) -> List[Dict[str, Any]]:
        """
        Extract transactions from statement text.

        Returns:
            Raw dicts with date, description, amount and type keys

        Raises:
            ClassifierError: If the call fails
        """

    @abstractmethod
    def suggest_category(
        self,
        description: str,
        amount: float,
        transaction_type: str,
        candidate_names: List[str]
    ) -> Optional[str]:
        """
        Suggest one category name for a transaction.

        Raises:
            ClassifierError: If the call fails
        """


class OllamaStatementClassifier(StatementClassifier):
    """Statement classifier backed by a local Ollama model."""

    def __init__(self, base_url: Optional[str] = None, model: Optional[str] = None,
                 timeout: Optional[int] = None):
        self.ollama_url = (base_url or settings.OLLAMA_URL).rstrip("/")
        self.model = model or settings.OLLAMA_MODEL
        self.timeout = timeout or settings.CLASSIFIER_TIMEOUT

    def _generate(self, prompt: str, json_output: bool, options: Dict[str, Any]) -> str:
        payload = {
            "model": self.model,
            "prompt": prompt,
            "stream": False,
            "options": options,
        }
        if json_output:
            payload["format"] = "json"

        try:
            response = requests.post(
                f"{self.ollama_url}/api/generate",
                json=payload,
                timeout=self.timeout
            )
        except requests.exceptions.Timeout as e:
            logger.error(f"Classifier request timed out after {self.timeout}s")
            raise ClassifierError("Classifier call failed: request timed out") from e
        except requests.exceptions.RequestException as e:
            logger.error(f"Classifier request error: {e}")
            raise ClassifierError(f"Classifier call failed: {e}") from e

        if response.status_code != 200:
            logger.error(f"Ollama API error: {response.status_code}")
            raise ClassifierError(f"Classifier call failed with status {response.status_code}")

        try:
            return response.json().get("response", "")
        except ValueError as e:
            raise ClassifierError("Classifier returned an unreadable response") from e

    @staticmethod
    def _extract_transactions(output: str) -> List[Dict[str, Any]]:
        """Accept either a bare JSON array or an object with a 'transactions' key."""
        text = (output or "").strip()
        # Models sometimes wrap JSON in markdown fences
        text = re.sub(r"^```(?:json)?\s*|\s*```$", "", text)
        try:
            parsed = json.loads(text)
        except json.JSONDecodeError:
            array_match = re.search(r"\[.*\]", text, re.DOTALL)
            if not array_match:
                raise ClassifierError("Classifier returned malformed JSON")
            try:
                parsed = json.loads(array_match.group())
            except json.JSONDecodeError as e:
                raise ClassifierError("Classifier returned malformed JSON") from e

        if isinstance(parsed, dict):
            parsed = parsed.get("transactions") or []
        if not isinstance(parsed, list):
            raise ClassifierError("Classifier returned an unexpected payload")
        return [item for item in parsed if isinstance(item, dict)]

    def classify_statement(self, text: str, filename: str) -> List[Dict[str, Any]]:
        prompt = f"""You are a bank statement parser. Extract ALL transactions from this bank statement.

RULES:
1. Identify columns: Date, Description/Narration, Debit, Credit, Balance
2. Determine if Debit/Credit or a single Amount column with +/- is used
3. Parse dates in any format and convert them to YYYY-MM-DD
4. Extract a clean, concise transaction description
5. INCOME is credit/positive/deposit, EXPENSE is debit/negative/withdrawal
6. Ignore header, footer and summary rows

Respond in this EXACT JSON format:
{{"transactions": [{{"date": "YYYY-MM-DD", "description": "string", "amount": 12.34, "type": "income"}}]}}
Amounts are positive numbers without thousands separators; type is "income" or "expense".

File name: {filename}

Bank statement data:
{text}
"""
        output = self._generate(
            prompt,
            json_output=True,
            options={"temperature": 0.1},  # Low temperature for consistent parsing
        )
        transactions = self._extract_transactions(output)
        logger.info(f"Classifier extracted {len(transactions)} rows from '{filename}'")
        return transactions

    def suggest_category(
        self,
        description: str,
        amount: float,
        transaction_type: str,
        candidate_names: List[str]
    ) -> Optional[str]:
        if not candidate_names:
            return None

        prompt = f"""You are a financial transaction categorizer.

Available categories for {transaction_type.upper()}:
{', '.join(candidate_names)}

Analyze this transaction and choose the MOST appropriate category:
- Description: "{description}"
- Amount: {abs(float(amount)):.2f}
- Type: {transaction_type}

Return ONLY the category name from the available list, nothing else."""

        output = self._generate(
            prompt,
            json_output=False,
            options={
                "temperature": 0.2,
                "num_predict": 20  # A category name is short
            },
        )
        return output.strip().strip('."\'') or None


# Singleton instance
_classifier = None

def get_statement_classifier() -> StatementClassifier:
    """Get or create the statement classifier instance."""
    global _classifier
    if _classifier is None:
        _classifier = OllamaStatementClassifier()
    return _classifier
