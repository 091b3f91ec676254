# workflow_registry.py - In-memory catalogue of workflow models
# This file validates workflow model definitions at registration time and serves them to the selector.

import logging
from typing import Dict, FrozenSet, Iterable, List, Optional, Set

from .errors import ConfigError
from .models import STANDARD_SEED_KEYS, StepType, WorkflowModel, WorkflowSummary
from .template import variables

logger = logging.getLogger(__name__)

class WorkflowModelRegistry:
    """Registered workflow models keyed by id, in registration order.

    Populated at startup and read-only afterwards.
    """

    def __init__(self, handler_types: Optional[Iterable[StepType]] = None,
                 seed_keys: FrozenSet[str] = STANDARD_SEED_KEYS):
        self.handler_types: Set[StepType] = set(handler_types) if handler_types is not None else set(StepType)
        self.seed_keys = frozenset(seed_keys)
        self._models: Dict[str, WorkflowModel] = {}
        self._dependencies: Dict[str, Dict[str, List[str]]] = {}
        self._order: Dict[str, List[str]] = {}
        self._default_id: Optional[str] = None

    def register(self, model: WorkflowModel):
        """Validate and add a model. Raises ConfigError; the registry is unchanged on failure."""
        if model.id in self._models:
            raise ConfigError(model.id, "a model with this id is already registered")

        seed_keys = self.seed_keys | set(model.additional_inputs)
        producers: Dict[str, str] = {}
        dependencies: Dict[str, List[str]] = {}
        phase_ids: Set[str] = set()

        for phase in model.phases:
            if phase.id in phase_ids:
                raise ConfigError(model.id, "duplicate phase id", phase.id)
            phase_ids.add(phase.id)

            depends_on: List[str] = []
            for key in phase.required_inputs:
                if key in producers:
                    if producers[key] not in depends_on:
                        depends_on.append(producers[key])
                elif key not in seed_keys:
                    later = [p.id for p in model.phases if key in p.outputs and p.id != phase.id]
                    hint = f" (produced later by {later[0]})" if later else ""
                    raise ConfigError(
                        model.id,
                        f"required input '{key}' is neither a seed parameter nor an output "
                        f"of an earlier phase{hint}",
                        phase.id, key,
                    )

            referenced = set(variables(phase.prompt_template)) | set(variables(phase.system_prompt))
            undeclared = sorted(referenced - set(phase.required_inputs))
            if undeclared:
                raise ConfigError(
                    model.id, f"template references undeclared inputs {undeclared}",
                    phase.id, undeclared[0],
                )

            for key in phase.outputs:
                if key in producers:
                    raise ConfigError(
                        model.id, f"output '{key}' is already produced by phase '{producers[key]}'",
                        phase.id, key,
                    )
                if key in seed_keys:
                    raise ConfigError(model.id, f"output '{key}' shadows a seed parameter", phase.id, key)

            if len(phase.outputs) > 1 and phase.output_split is None:
                raise ConfigError(
                    model.id, f"phase declares {len(phase.outputs)} outputs but no output split rule",
                    phase.id,
                )

            for key in phase.outputs:
                producers[key] = phase.id
            dependencies[phase.id] = depends_on

        step_ids: Set[str] = set()
        for step in model.post_processing:
            if step.id in step_ids:
                raise ConfigError(model.id, f"duplicate post-processing step id '{step.id}'", key=step.id)
            step_ids.add(step.id)
            if step.type not in self.handler_types:
                raise ConfigError(
                    model.id, f"post-processing step '{step.id}' has no handler for type '{step.type.value}'",
                    key=step.id,
                )

        if model.content_output and model.content_output not in producers:
            raise ConfigError(
                model.id, f"content_output '{model.content_output}' is not produced by any phase",
                key=model.content_output,
            )

        self._models[model.id] = model
        self._dependencies[model.id] = dependencies
        self._order[model.id] = self._topological_order(model, dependencies)
        logger.info(f"Registered workflow model {model.id} ({len(model.phases)} phases)")

    @staticmethod
    def _topological_order(model: WorkflowModel, dependencies: Dict[str, List[str]]) -> List[str]:
        # Kahn's algorithm, picking ready phases in declared order
        remaining = [phase.id for phase in model.phases]
        done: Set[str] = set()
        order: List[str] = []
        while remaining:
            ready = next(pid for pid in remaining if all(d in done for d in dependencies[pid]))
            order.append(ready)
            done.add(ready)
            remaining.remove(ready)
        return order

    def unregister(self, model_id: str) -> bool:
        if model_id not in self._models:
            return False
        if model_id == self._default_id:
            raise ConfigError(model_id, "the default model cannot be unregistered")
        del self._models[model_id]
        del self._dependencies[model_id]
        del self._order[model_id]
        logger.info(f"Unregistered workflow model {model_id}")
        return True

    def all(self) -> List[WorkflowModel]:
        return list(self._models.values())

    def get(self, model_id: str) -> Optional[WorkflowModel]:
        return self._models.get(model_id)

    def ids(self) -> List[str]:
        return list(self._models)

    def __contains__(self, model_id: str) -> bool:
        return model_id in self._models

    def __len__(self) -> int:
        return len(self._models)

    def set_default(self, model_id: str):
        if model_id not in self._models:
            raise ConfigError(model_id, "cannot be the default because it is not registered")
        self._default_id = model_id
        logger.info(f"Default workflow model set to {model_id}")

    def default(self) -> Optional[WorkflowModel]:
        return self._models.get(self._default_id) if self._default_id else None

    def dependencies(self, model_id: str) -> Dict[str, List[str]]:
        """Phase id -> ids of the phases producing its inputs."""
        return {pid: list(deps) for pid, deps in self._dependencies[model_id].items()}

    def execution_order(self, model_id: str) -> List[str]:
        return list(self._order[model_id])

    def summaries(self) -> List[WorkflowSummary]:
        return [self.summary(model) for model in self._models.values()]

    def summary(self, model: WorkflowModel) -> WorkflowSummary:
        return WorkflowSummary(
            id=model.id,
            name=model.name,
            description=model.description,
            version=model.version,
            quality_levels=sorted(model.quality_levels, key=lambda q: list(type(q)).index(q)),
            content_types=sorted(model.content_types),
            platforms=sorted(model.platforms),
            phase_ids=[phase.id for phase in model.phases],
            post_processing=[step.type for step in model.post_processing],
            is_default=model.id == self._default_id,
        )

    def load_builtin_models(self, default_id: str = "standard"):
        """Register the bundled models and designate the default."""
        from .builtin_models import BUILTIN_MODELS

        for model in BUILTIN_MODELS:
            if model.id not in self._models:
                self.register(model)
        if default_id in self._models:
            self.set_default(default_id)
        else:
            logger.warning(f"Default workflow model '{default_id}' is not registered")
