"""
Pipeline orchestrator: builds pollers and their sinks from configuration
and wires them to the scheduler.
"""

import logging
from dataclasses import dataclass
from typing import Any, Dict, List, Optional

from plugins.openwhisk import ActivationPoller

from .codecs import get_codec
from .config import ConfigurationError, PollerConfig, build_config
from .infra.http import HttpClient
from .infra.scheduler import Scheduler
from .interfaces import Sink
from .models import Event
from .plugin_loader import get as load_sink_class

logger = logging.getLogger(__name__)

DEFAULT_SINK = "stdout_sink.StdoutSink"


class FanOutSink(Sink):
    """Delivers each event to several sinks in order.

    A failing sink is logged and does not keep the event from the others.
    """

    name = "FanOutSink"

    def __init__(self, sinks: List[Sink]):
        self.sinks = list(sinks)

    async def handle(self, event: Event) -> None:
        for sink in self.sinks:
            try:
                await sink.handle(event)
            except Exception as e:
                logger.error(f"Sink {sink.name} failed: {e}", exc_info=True)

    async def close(self) -> None:
        for sink in self.sinks:
            try:
                await sink.close()
            except Exception as e:
                logger.error(f"Closing sink {sink.name} failed: {e}")


@dataclass
class Pipeline:
    """One configured poller and the sink it feeds."""

    config: PollerConfig
    poller: ActivationPoller
    sink: Sink

    @property
    def name(self) -> str:
        return self.config.name

    @property
    def job_id(self) -> str:
        return f"pipeline_{self.config.name}"

    async def close(self) -> None:
        await self.poller.close()
        await self.sink.close()


def _build_sinks(config: PollerConfig) -> Sink:
    entries = list(config.sinks)
    if not entries:
        logger.info(f"Pipeline '{config.name}' has no sinks configured; using {DEFAULT_SINK}")
        return load_sink_class(DEFAULT_SINK)()

    instances: List[Sink] = []
    for entry in entries:
        try:
            cls = load_sink_class(entry.class_path)
            instances.append(cls(**entry.kwargs))
        except KeyError as e:
            raise ConfigurationError(f"Pipeline '{config.name}': {e.args[0]}") from e
        except TypeError as e:
            raise ConfigurationError(f"Pipeline '{config.name}': bad kwargs for {entry.class_path}: {e}") from e

    return instances[0] if len(instances) == 1 else FanOutSink(instances)


def build_pipeline(
    cfg: Dict[str, Any],
    *,
    sink: Optional[Sink] = None,
    http: Optional[HttpClient] = None,
) -> Pipeline:
    """Validate one pipeline's settings and create its poller."""
    config = build_config(cfg)
    codec = get_codec(config.codec)
    sink = sink or _build_sinks(config)
    poller = ActivationPoller(config, sink, http=http, codec=codec)
    return Pipeline(config=config, poller=poller, sink=sink)


def build_pipelines(pipelines_cfg: List[Dict[str, Any]]) -> List[Pipeline]:
    """Build every pipeline; the first invalid one aborts the whole startup."""
    pipelines = [build_pipeline(cfg) for cfg in pipelines_cfg]

    names = [p.name for p in pipelines]
    duplicates = sorted({n for n in names if names.count(n) > 1})
    if duplicates:
        raise ConfigurationError(f"Duplicate pipeline names: {duplicates}")
    return pipelines


def schedule_pipelines(pipelines: List[Pipeline], scheduler: Scheduler) -> None:
    """Register one scheduler job per pipeline."""
    for pipeline in pipelines:
        scheduler.add_trigger_job(pipeline.poller.run_once, pipeline.config.trigger, job_id=pipeline.job_id)
        logger.info(f"Scheduled pipeline '{pipeline.name}' with {pipeline.config.trigger!r}")


async def run_pipeline_once(cfg: Dict[str, Any]) -> None:
    """Run a single poll cycle of one pipeline."""
    config = build_config(cfg)
    async with HttpClient(timeout=config.request_timeout, max_retries=config.max_retries) as http:
        pipeline = build_pipeline(cfg, http=http)
        try:
            logger.info(f"Starting poll cycle: {pipeline.name}")
            await pipeline.poller.run_cycle()
            logger.info(f"Poll cycle completed: {pipeline.name}")
        finally:
            await pipeline.close()
