"""
Supplier EPI - Questionnaire Service

Access to the weighted questionnaire held by the configuration store.

- Reads never fail: a missing document is replaced by the built-in default
  (written back best-effort) and a failing store is masked by the default.
- Saves are blocked when section weights of a category do not add up to 100.
"""

import logging
from typing import List

from supplier_epi.schemas.epi import (
    Category,
    CategoryQuestionnaire,
    Question,
    Questionnaire,
    Section,
    WeightValidation,
)
from supplier_epi.stores.base import ConfigurationStore
from supplier_epi.utils.error_handling import ConfigValidationError

logger = logging.getLogger(__name__)


# Allowed deviation from 100 when validating section weights
WEIGHT_TOLERANCE = 0.1

CATEGORY_LABELS = {
    Category.CALIDAD: "Calidad",
    Category.ABASTECIMIENTO: "Abastecimiento",
}


def default_questionnaire() -> Questionnaire:
    """Placeholder questionnaire used until an administrator saves one."""
    return Questionnaire(
        calidad=CategoryQuestionnaire(
            total_weight=100,
            sections=[
                Section(
                    id="default_s1",
                    title="Nueva Sección (Calidad)",
                    weight=100,
                    questions=[
                        Question(
                            id="default_q1",
                            text="¿El proveedor cuenta con certificación ISO 9001? (Pregunta de ejemplo)",
                        ),
                    ],
                ),
            ],
        ),
        abastecimiento=CategoryQuestionnaire(
            total_weight=100,
            sections=[
                Section(
                    id="default_a1",
                    title="Nueva Sección (Abastecimiento)",
                    weight=100,
                    questions=[
                        Question(
                            id="default_q2",
                            text="¿El proveedor cumple con los tiempos de entrega? (Pregunta de ejemplo)",
                        ),
                    ],
                ),
            ],
        ),
    )


def validate_weights(questionnaire: Questionnaire) -> WeightValidation:
    """Check that section weights sum to 100 in each category."""
    messages: List[str] = []
    for category in Category:
        total = questionnaire.category(category).sections_weight
        if abs(total - 100) > WEIGHT_TOLERANCE:
            messages.append(
                f"El peso total de {CATEGORY_LABELS[category]} es {total:g}%, debe ser 100%."
            )
    return WeightValidation(is_valid=not messages, messages=messages)


class QuestionnaireService:
    """Read and save the EPI questionnaire."""

    def __init__(self, store: ConfigurationStore):
        self.store = store

    async def get_questionnaire(self) -> Questionnaire:
        try:
            questionnaire = await self.store.get()
        except Exception as e:
            logger.error(f"Error loading EPI questionnaire, using built-in default: {e}")
            return default_questionnaire()

        if questionnaire is not None:
            return questionnaire

        logger.info("No EPI questionnaire stored, creating default")
        questionnaire = default_questionnaire()
        try:
            await self.store.put(questionnaire)
        except Exception as e:
            logger.warning(f"Could not store default EPI questionnaire, using local default: {e}")
        return questionnaire

    async def save_questionnaire(self, questionnaire: Questionnaire) -> Questionnaire:
        """Persist a questionnaire after validating its section weights."""
        validation = validate_weights(questionnaire)
        if not validation.is_valid:
            raise ConfigValidationError(validation.messages)

        await self.store.put(questionnaire)
        logger.info(
            f"EPI questionnaire saved: {questionnaire.calidad.question_count} calidad / "
            f"{questionnaire.abastecimiento.question_count} abastecimiento questions"
        )
        return questionnaire
