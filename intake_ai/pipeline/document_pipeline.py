"""Document intelligence pipeline.

Caller-facing operations over the extraction stages::

    classifier ─┐
                ├─> ambiguity resolver ─> record assembler ─> acknowledgment draft
    extractor  ─┘

Classification and extraction run concurrently; every later stage waits
for the stage it depends on. Stages degrade to their defaults instead of
raising, so the only error a caller sees is ``PipelineAbortError`` for input
that makes the operation meaningless.
"""

import asyncio
from dataclasses import dataclass, field
from typing import Any, Dict, List, Optional, Union

from intake_ai.config import Settings, get_settings
from intake_ai.config.target_schemas import get_target_schema
from intake_ai.core.base_stage import StageResult
from intake_ai.core.exceptions import ConfigurationError, PipelineAbortError
from intake_ai.core.unified_llm import create_llm_client_from_settings
from intake_ai.pipeline.hl7 import fhir_to_text, hl7_to_text, split_segments
from intake_ai.repositories.base_repository import BaseRepository
from intake_ai.schemas.documents import Classification, DocumentFormat, RawDocument
from intake_ai.schemas.entities import NERResult
from intake_ai.schemas.mapping import FieldMappingResult
from intake_ai.schemas.metrics import MetricShape, ValidatedMetrics
from intake_ai.schemas.records import AssembledRecord, PipelineRun
from intake_ai.schemas.target_schema import TargetSchema
from intake_ai.services.assembly import RecordAssembler
from intake_ai.services.classification import DocumentClassifier
from intake_ai.services.extraction import AmbiguityResolver, EntityExtractor
from intake_ai.services.mapping import FieldMapper
from intake_ai.services.performance import PerformanceTracker
from intake_ai.services.quality import MetricValidator, validate_metrics
from intake_ai.utils.logging import configure_logging, get_logger

LOGGER = get_logger(__name__)

DOCUMENT_MODULE = "document_processing"
MAPPING_MODULE = "field_mapping"
METRICS_MODULE = "qapi_metrics"

DEFAULT_SCHEMA_ID = "referral"


@dataclass
class DocumentProcessingResult:
    """Everything ``process_document`` produced for one document."""
    document: RawDocument
    record: AssembledRecord
    classification: Classification
    ner: NERResult
    reasoning: str
    run: PipelineRun
    stages: List[StageResult] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "declared_format": self.document.declared_format.value,
            "record": self.record.model_dump(mode="json"),
            "classification": self.classification.model_dump(mode="json"),
            "entities": self.ner.model_dump(mode="json"),
            "reasoning": self.reasoning,
            "run": self.run.model_dump(mode="json"),
            "stages": [stage.to_dict() for stage in self.stages],
        }


class DocumentIntelligencePipeline:
    """Turns unstructured intake documents into schema-keyed records."""

    def __init__(
        self,
        client: Any,
        extraction_client: Optional[Any] = None,
        settings: Optional[Settings] = None,
        run_repository: Optional[BaseRepository[PipelineRun]] = None,
        record_repository: Optional[BaseRepository[AssembledRecord]] = None,
        schema_id: str = DEFAULT_SCHEMA_ID,
    ):
        """Initialize the pipeline.

        Args:
            client: Text-generation client for classification, reasoning,
                mapping, drafting and metrics
            extraction_client: Optional distinct client for entity extraction
            settings: Thresholds, caps and timeouts (environment when omitted)
            run_repository: Receives every closed PipelineRun
            record_repository: Receives every AssembledRecord
            schema_id: Target schema for ``process_document``

        Raises:
            ConfigurationError: If ``schema_id`` is not a known schema
        """
        settings = settings or get_settings()
        configure_logging(settings.log_level)
        timeout = settings.service_timeout_seconds

        self.schema: TargetSchema = get_target_schema(schema_id)
        self.record_repository = record_repository

        self.classifier = DocumentClassifier(
            client,
            max_chars=settings.classification_max_chars,
            timeout_seconds=timeout,
        )
        self.extractor = EntityExtractor(extraction_client or client, timeout_seconds=timeout)
        self.resolver = AmbiguityResolver(
            client,
            threshold=settings.ambiguity_threshold,
            excerpt_chars=settings.reasoning_excerpt_chars,
            timeout_seconds=timeout,
        )
        self.mapper = FieldMapper(
            client,
            acceptance_threshold=settings.mapping_acceptance_threshold,
            excerpt_chars=settings.mapping_excerpt_chars,
            timeout_seconds=timeout,
        )
        self.assembler = RecordAssembler(client, timeout_seconds=timeout)
        self.metric_validator = MetricValidator(client, timeout_seconds=timeout)
        self.tracker = PerformanceTracker(
            repository=run_repository,
            cost_per_service_call=settings.cost_per_service_call,
        )

    @classmethod
    def from_settings(
        cls,
        settings: Optional[Settings] = None,
        run_repository: Optional[BaseRepository[PipelineRun]] = None,
        record_repository: Optional[BaseRepository[AssembledRecord]] = None,
    ) -> "DocumentIntelligencePipeline":
        """Build the pipeline and its provider clients from configuration.

        Raises:
            ConfigurationError: If a provider is unknown or its API key is missing
        """
        settings = settings or get_settings()
        client = create_llm_client_from_settings(settings)
        extraction_client = None
        if settings.extraction_llm_provider:
            extraction_client = create_llm_client_from_settings(settings, settings.extraction_llm_provider)

        return cls(
            client,
            extraction_client=extraction_client,
            settings=settings,
            run_repository=run_repository,
            record_repository=record_repository,
        )

    def _ingest(
        self,
        raw_content: Union[str, bytes],
        declared_format: Union[str, DocumentFormat],
        filename: Optional[str] = None,
    ) -> RawDocument:
        try:
            document_format = DocumentFormat(declared_format)
        except ValueError as e:
            raise PipelineAbortError(f"Unsupported document format: {declared_format!r}", original_error=e)

        if not isinstance(raw_content, (str, bytes, bytearray)):
            raise PipelineAbortError(f"Document content must be text or bytes, got {type(raw_content).__name__}")

        document = RawDocument(content=raw_content, declared_format=document_format, filename=filename)
        if document.is_empty:
            raise PipelineAbortError("Document is empty")
        return document

    async def process_document(
        self,
        raw_content: Union[str, bytes],
        declared_format: Union[str, DocumentFormat] = DocumentFormat.PLAIN_TEXT,
        filename: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> DocumentProcessingResult:
        """Classify, extract, reason, assemble and draft for one document.

        Args:
            raw_content: Document text or UTF-8 bytes
            declared_format: Format tag supplied by the caller
            filename: Optional original filename, for logs
            timeout: Per-call timeout override for every stage

        Returns:
            DocumentProcessingResult; stage failures lower confidence and mark
            the run partial or failed instead of raising

        Raises:
            PipelineAbortError: If the document is empty or its format unknown
        """
        document = self._ingest(raw_content, declared_format, filename)
        text = document.content
        context = self.tracker.start(DOCUMENT_MODULE)

        LOGGER.info(
            f"Processing document: {filename or 'inline'}",
            extra={
                "run_id": context.run_id,
                "declared_format": document.declared_format.value,
                "content_length": len(document),
            }
        )

        classification, extraction = await asyncio.gather(
            self.classifier.classify(text, timeout=timeout),
            self.extractor.extract(text, timeout=timeout),
        )
        reasoning = await self.resolver.resolve(text, extraction.value.entities, timeout=timeout)

        record = self.assembler.assemble(self.schema, entities=extraction.value.entities)
        record, draft = await self.assembler.draft_acknowledgment(record, timeout=timeout)

        stages: List[StageResult] = [classification, extraction, reasoning, draft]
        overall_confidence = (extraction.value.confidence + classification.value.confidence) / 2
        run = self.tracker.close(context, stages, overall_confidence)

        await self.tracker.record(run)
        await self._store_record(record)

        LOGGER.info(
            f"Document processed: {run.outcome.value}",
            extra={
                "run_id": run.run_id,
                "document_type": classification.value.document_type.value,
                "entities": len(extraction.value.entities),
                "missing_required": sorted(record.missing_required_fields),
                "duration_ms": run.duration_ms,
            }
        )

        return DocumentProcessingResult(
            document=document,
            record=record,
            classification=classification.value,
            ner=extraction.value,
            reasoning=reasoning.value,
            run=run,
            stages=stages,
        )

    async def map_fields(
        self,
        raw_content: Union[str, bytes],
        target_schema_id: str,
        filename: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> FieldMappingResult:
        """Map a document's own field labels onto a target schema.

        Returns:
            FieldMappingResult with committed mappings, suggestions, the
            extracted values and the assembled record

        Raises:
            PipelineAbortError: If the document is empty or the schema unknown
        """
        document = self._ingest(raw_content, DocumentFormat.PLAIN_TEXT, filename)
        try:
            schema = get_target_schema(target_schema_id)
        except ConfigurationError as e:
            raise PipelineAbortError(str(e), original_error=e)

        context = self.tracker.start(MAPPING_MODULE)
        mapping_run = await self.mapper.map_document(
            document.content, schema, filename=filename, timeout=timeout
        )

        record = self.assembler.assemble(schema, mapped_values=mapping_run.result.extracted_data)
        result = mapping_run.result.model_copy(update={"record": record})

        run = self.tracker.close(context, mapping_run.stages, result.overall_confidence * 100)
        await self.tracker.record(run)
        await self._store_record(record)

        LOGGER.info(
            f"Field mapping completed for {filename or 'document'}",
            extra={
                "run_id": run.run_id,
                "schema_id": schema.schema_id,
                "mapped": len(result.mappings),
                "suggestions": len(result.suggestions),
                "unmapped": len(result.unmapped_fields),
                "overall_confidence": result.overall_confidence,
            }
        )
        return result

    def validate_metrics(
        self,
        raw_text: Union[str, bytes],
        expected_shape: Union[str, MetricShape],
    ) -> ValidatedMetrics:
        """Recover typed quality metrics from analytical text already in hand."""
        try:
            shape = MetricShape(expected_shape)
        except ValueError as e:
            raise PipelineAbortError(f"Unsupported metric shape: {expected_shape!r}", original_error=e)
        return validate_metrics(raw_text, shape)

    async def analyze_metrics(
        self,
        raw_metrics: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> ValidatedMetrics:
        context = self.tracker.start(METRICS_MODULE)
        result = await self.metric_validator.analyze_metrics(raw_metrics, timeout=timeout)
        await self._track_metrics(context, result, result.value.analysis.overall_score)
        return result.value

    async def recommend_improvement_projects(
        self,
        metrics: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> ValidatedMetrics:
        context = self.tracker.start(METRICS_MODULE)
        result = await self.metric_validator.recommend_improvement_projects(metrics, timeout=timeout)
        await self._track_metrics(context, result, 0.0 if result.value.used_default else 100.0)
        return result.value

    async def validate_compliance(
        self,
        compliance_data: Dict[str, Any],
        timeout: Optional[float] = None,
    ) -> ValidatedMetrics:
        context = self.tracker.start(METRICS_MODULE)
        result = await self.metric_validator.validate_compliance(compliance_data, timeout=timeout)
        await self._track_metrics(context, result, 0.0 if result.value.used_default else 100.0)
        return result.value

    async def process_hl7_message(
        self,
        message: Union[str, bytes],
        filename: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> DocumentProcessingResult:
        """Flatten an HL7 v2 message to JSON and process it as a document.

        Raises:
            PipelineAbortError: If the message has no segments
        """
        if isinstance(message, (bytes, bytearray)):
            message = bytes(message).decode("utf-8", errors="replace")
        if not isinstance(message, str) or not split_segments(message):
            raise PipelineAbortError("HL7 message is empty")

        return await self.process_document(
            hl7_to_text(message), DocumentFormat.HL7, filename=filename, timeout=timeout
        )

    async def process_fhir_resource(
        self,
        resource: Union[Dict[str, Any], str],
        filename: Optional[str] = None,
        timeout: Optional[float] = None,
    ) -> DocumentProcessingResult:
        """Pretty-print a FHIR resource and process it as a document.

        Raises:
            PipelineAbortError: If the resource is empty or not valid JSON
        """
        if not resource:
            raise PipelineAbortError("FHIR resource is empty")
        try:
            content = fhir_to_text(resource)
        except (TypeError, ValueError) as e:
            raise PipelineAbortError(f"FHIR resource is not valid JSON: {e}", original_error=e)

        return await self.process_document(
            content, DocumentFormat.FHIR, filename=filename, timeout=timeout
        )

    async def _track_metrics(self, context, result: StageResult, confidence: float) -> None:
        run = self.tracker.close(context, [result], confidence)
        await self.tracker.record(run)

    async def _store_record(self, record: AssembledRecord) -> None:
        if self.record_repository is None:
            return
        try:
            await self.record_repository.add(record)
        except Exception as e:
            LOGGER.error(
                f"Failed to hand off assembled record: {e}",
                exc_info=True,
                extra={"schema_id": record.schema_id}
            )
