"""
Job Configuration
=================

Dataclasses describing a new job: what to analyse (``AnalysisConfig`` and
its ``Detector`` list), how the uploaded data is laid out
(``DataDescription``), optional transforms and resource limits.

Only fields that have been set are written to the JSON payload so that the
server applies its own defaults for everything else.  The scheduler
configuration and custom settings are passed through untouched as
dictionaries.
"""

from __future__ import annotations

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional


def _compact(values: Dict[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in values.items() if value is not None}


@dataclass
class Detector:
    """A single analysis function applied to a field, e.g. ``mean(responsetime)``."""

    function: Optional[str] = None
    field_name: Optional[str] = None
    by_field_name: Optional[str] = None
    over_field_name: Optional[str] = None
    partition_field_name: Optional[str] = None
    detector_description: Optional[str] = None
    use_null: Optional[bool] = None
    exclude_frequent: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "detectorDescription": self.detector_description,
            "function": self.function,
            "fieldName": self.field_name,
            "byFieldName": self.by_field_name,
            "overFieldName": self.over_field_name,
            "partitionFieldName": self.partition_field_name,
            "useNull": self.use_null,
            "excludeFrequent": self.exclude_frequent,
        })

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class AnalysisConfig:
    detectors: List[Detector] = field(default_factory=list)
    bucket_span: Optional[int] = None
    batch_span: Optional[int] = None
    categorization_field_name: Optional[str] = None
    latency: Optional[int] = None
    period: Optional[int] = None
    summary_count_field_name: Optional[str] = None
    influencers: Optional[List[str]] = None
    overlapping_buckets: Optional[bool] = None
    result_finalization_window: Optional[int] = None
    multivariate_by_fields: Optional[bool] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "bucketSpan": self.bucket_span,
            "batchSpan": self.batch_span,
            "categorizationFieldName": self.categorization_field_name,
            "latency": self.latency,
            "period": self.period,
            "summaryCountFieldName": self.summary_count_field_name,
            "detectors": [d.to_dict() for d in self.detectors],
            "influencers": self.influencers,
            "overlappingBuckets": self.overlapping_buckets,
            "resultFinalizationWindow": self.result_finalization_window,
            "multivariateByFields": self.multivariate_by_fields,
        })


@dataclass
class DataDescription:
    """How records are laid out in the uploaded data.

    ``format`` is one of ``JSON``, ``DELIMITED``, ``SINGLE_LINE`` or
    ``ELASTICSEARCH``; ``time_format`` is ``epoch``, ``epoch_ms`` or a
    date pattern.
    """

    format: Optional[str] = None
    time_field: Optional[str] = None
    time_format: Optional[str] = None
    field_delimiter: Optional[str] = None
    quote_character: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "format": self.format.upper() if self.format else None,
            "timeField": self.time_field,
            "timeFormat": self.time_format,
            "fieldDelimiter": self.field_delimiter,
            "quoteCharacter": self.quote_character,
        })


@dataclass
class AnalysisLimits:
    model_memory_limit: Optional[int] = None
    categorization_examples_limit: Optional[int] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "modelMemoryLimit": self.model_memory_limit,
            "categorizationExamplesLimit": self.categorization_examples_limit,
        })


@dataclass
class TransformConfig:
    transform: str
    inputs: List[str] = field(default_factory=list)
    arguments: Optional[List[str]] = None
    outputs: Optional[List[str]] = None
    condition: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "transform": self.transform,
            "inputs": self.inputs,
            "arguments": self.arguments,
            "outputs": self.outputs,
            "condition": self.condition,
        })

    def to_json(self) -> str:
        return json.dumps(self.to_dict())


@dataclass
class ModelDebugConfig:
    write_to: Optional[str] = None
    bounds_percentile: Optional[float] = None
    terms: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "writeTo": self.write_to,
            "boundsPercentile": self.bounds_percentile,
            "terms": self.terms,
        })


@dataclass
class JobConfiguration:
    """Everything needed to create a job.

    ``id`` may be left empty, in which case the server generates one and
    returns it from the create call.
    """

    analysis_config: Optional[AnalysisConfig] = None
    id: Optional[str] = None
    description: Optional[str] = None
    data_description: Optional[DataDescription] = None
    analysis_limits: Optional[AnalysisLimits] = None
    transforms: Optional[List[TransformConfig]] = None
    model_debug_config: Optional[ModelDebugConfig] = None
    scheduler_config: Optional[Dict[str, Any]] = None
    timeout: Optional[int] = None
    renormalization_window_days: Optional[int] = None
    background_persist_interval: Optional[int] = None
    model_snapshot_retention_days: Optional[int] = None
    results_retention_days: Optional[int] = None
    ignore_downtime: Optional[str] = None
    custom_settings: Optional[Dict[str, Any]] = None

    def to_dict(self) -> Dict[str, Any]:
        return _compact({
            "id": self.id,
            "description": self.description,
            "analysisConfig": self.analysis_config.to_dict() if self.analysis_config else None,
            "analysisLimits": self.analysis_limits.to_dict() if self.analysis_limits else None,
            "schedulerConfig": self.scheduler_config,
            "transforms": [t.to_dict() for t in self.transforms] if self.transforms is not None else None,
            "dataDescription": self.data_description.to_dict() if self.data_description else None,
            "timeout": self.timeout,
            "modelDebugConfig": self.model_debug_config.to_dict() if self.model_debug_config else None,
            "renormalizationWindowDays": self.renormalization_window_days,
            "backgroundPersistInterval": self.background_persist_interval,
            "modelSnapshotRetentionDays": self.model_snapshot_retention_days,
            "resultsRetentionDays": self.results_retention_days,
            "ignoreDowntime": self.ignore_downtime,
            "customSettings": self.custom_settings,
        })

    def to_json(self) -> str:
        return json.dumps(self.to_dict())
