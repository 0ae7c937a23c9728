import logging
from concurrent.futures import ThreadPoolExecutor
from dataclasses import replace
from typing import Any, Dict, Iterable, List, Optional

from .api import ApiClient
from .exceptions import RemoteError, SessionError, ValidationError
from .models import (
    BatchSaveResult, Decision, Evaluation, EvaluationKey, MAX_SCORE, MIN_SCORE,
    RubricCategory,
)


logger = logging.getLogger(__name__)

MAX_PARALLEL_SAVES = 8


def _coerce_decision(value) -> Optional[Decision]:
    if value is None or isinstance(value, Decision):
        return value
    try:
        return Decision(str(value).strip().upper().replace("-", "_"))
    except ValueError:
        choices = ", ".join(d.value for d in Decision)
        raise ValidationError(f"Decision must be one of: {choices}", field="decision")


def _coerce_scores(scores: Dict[Any, Any]) -> Dict[RubricCategory, int]:
    coerced = {}
    for name, score in scores.items():
        try:
            category = RubricCategory(name)
        except ValueError:
            raise ValidationError(f"Unknown rubric category: {name}", field="rubricScores")

        if score is None:
            continue
        try:
            score = int(score)
        except (TypeError, ValueError):
            raise ValidationError(f"Score for {category.value} must be a whole number", field="rubricScores")
        if not MIN_SCORE <= score <= MAX_SCORE:
            raise ValidationError(
                f"Score for {category.value} must be between {MIN_SCORE} and {MAX_SCORE}",
                field="rubricScores",
            )
        coerced[category] = score
    return coerced


class EvaluationRecorder:
    """Buffers one evaluator's scorecards for an interview and saves them.

    Edits stay local until saved. Saving everything sends one independent
    upsert per application; there is no rollback, so a batch can end up
    partly saved, and the result says which ones made it.
    """

    def __init__(self, api: ApiClient, interview_id: Any, evaluator_id: Any = None):
        self.api = api
        self.interview_id = interview_id
        self.evaluator_id = evaluator_id
        self.interview: Dict[str, Any] = {}
        self.group_ids: List[str] = []
        self.applications: List[Dict[str, Any]] = []
        self.evaluations: Dict[EvaluationKey, Evaluation] = {}

    @property
    def _base(self) -> str:
        return f"/admin/interviews/{self.interview_id}"

    def load(self, group_ids: Iterable[Any]) -> None:
        """Load the interview, its applications for the given groups and saved evaluations."""
        self.group_ids = [str(g) for g in group_ids]

        if self.evaluator_id is None:
            profile = self.api.get("/admin/profile") or {}
            self.evaluator_id = profile.get("id")

        self.interview = self.api.get(self._base) or {}

        try:
            self.applications = self.api.get(
                f"{self._base}/applications", params={"groupIds": ",".join(self.group_ids)}
            ) or []
        except RemoteError as e:
            logger.warning("Failed to load applications for interview %s: %s", self.interview_id, e)
            self.applications = []

        try:
            saved = self.api.get(f"{self._base}/evaluations") or []
        except RemoteError as e:
            logger.warning("Failed to load evaluations for interview %s: %s", self.interview_id, e)
            saved = []

        self.evaluations = {}
        for item in saved:
            key = EvaluationKey(str(item.get("applicationId")), str(item.get("evaluatorId")))
            self.evaluations[key] = Evaluation.from_api(item)

    def _key(self, application_id: Any) -> EvaluationKey:
        if self.evaluator_id is None:
            raise SessionError("Current evaluator is unknown; load the interview first")
        return EvaluationKey(str(application_id), str(self.evaluator_id))

    def get_evaluation(self, application_id: Any) -> Evaluation:
        """Return the buffered evaluation, or an empty one."""
        return self.evaluations.get(self._key(application_id)) or Evaluation()

    def update_evaluation(self, application_id: Any, *, notes: Optional[str] = None,
                          decision=None, rubric_scores: Optional[Dict[Any, Any]] = None) -> Evaluation:
        """Merge the given fields into the buffered evaluation. Nothing is sent."""
        current = self.get_evaluation(application_id)
        changes: Dict[str, Any] = {}

        if notes is not None:
            changes["notes"] = notes
        if decision is not None:
            changes["decision"] = _coerce_decision(decision)
        if rubric_scores is not None:
            scores = dict(current.rubric_scores)
            scores.update(_coerce_scores(rubric_scores))
            changes["rubric_scores"] = scores

        updated = replace(current, **changes)
        self.evaluations[self._key(application_id)] = updated
        return updated

    def save_evaluation(self, application_id: Any) -> None:
        """Upsert one evaluation.

        Raises:
            RemoteError: If the backend rejects it
        """
        evaluation = self.get_evaluation(application_id)
        self.api.post(f"{self._base}/evaluations", evaluation.to_api(application_id))

    def save_all(self, application_ids: Optional[Iterable[Any]] = None) -> BatchSaveResult:
        """Upsert every evaluation concurrently and wait for all of them.

        Args:
            application_ids: Applications to save; defaults to every loaded application

        Returns:
            BatchSaveResult listing saved application ids and failures by id
        """
        if application_ids is None:
            application_ids = [app.get("id") for app in self.applications]
        application_ids = list(application_ids)

        result = BatchSaveResult()
        if not application_ids:
            return result

        workers = min(MAX_PARALLEL_SAVES, len(application_ids))
        with ThreadPoolExecutor(max_workers=workers) as pool:
            futures = [(app_id, pool.submit(self.save_evaluation, app_id)) for app_id in application_ids]

            for app_id, future in futures:
                try:
                    future.result()
                except RemoteError as e:
                    logger.warning("Failed to save evaluation for application %s: %s", app_id, e)
                    result.failed[app_id] = str(e)
                else:
                    result.succeeded.append(app_id)

        return result

    def has_evaluations(self, application_ids: Iterable[Any]) -> bool:
        """True when the current evaluator started any of these evaluations."""
        return any(self.get_evaluation(app_id).is_started for app_id in application_ids)

    def snapshot(self) -> Dict[str, Any]:
        """JSON-safe copy of the buffer."""
        return {
            "interview_id": self.interview_id,
            "evaluator_id": self.evaluator_id,
            "group_ids": self.group_ids,
            "applications": self.applications,
            "evaluations": [
                {"evaluatorId": key.evaluator_id, **evaluation.to_api(key.application_id)}
                for key, evaluation in self.evaluations.items()
            ],
        }

    def restore(self, data: Dict[str, Any]) -> None:
        """Reload a buffer produced by snapshot()."""
        if str(data.get("interview_id")) != str(self.interview_id):
            raise SessionError(f"Saved session belongs to interview {data.get('interview_id')}")

        self.evaluator_id = data.get("evaluator_id")
        self.group_ids = [str(g) for g in data.get("group_ids") or []]
        self.applications = data.get("applications") or []
        self.evaluations = {
            EvaluationKey(str(item["applicationId"]), str(item["evaluatorId"])): Evaluation.from_api(item)
            for item in data.get("evaluations") or []
        }
