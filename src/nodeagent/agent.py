"""
nodeagent - main daemon.

Startup sequence:
  1. Load config (file, NODEAGENT_* environment, command line)
  2. Discover node identity and validate the counter source
  3. Start the resample and publish timers
  4. Run until SIGINT/SIGTERM (or until the status view is closed)
"""

import argparse
import logging
import signal
import sys
from dataclasses import dataclass

from nodeagent.config import COUNTER_SOURCES, AgentConfig, load_config
from nodeagent.counters import CounterSource, create_counter_source
from nodeagent.errors import ConfigError, ReadError, TransmitError
from nodeagent.models import UtilizationSnapshot
from nodeagent.publisher import Publisher, create_publisher
from nodeagent.sampler import UtilizationSampler
from nodeagent.scheduler import DualCadenceScheduler
from nodeagent.state import NodeState, discover_identity

LOG_FORMAT = "[%(asctime)s] %(levelname)s %(name)s - %(message)s"
LOG_DATEFMT = "%Y-%m-%dT%H:%M:%S"

log = logging.getLogger("nodeagent.agent")


@dataclass
class Agent:
    """The wired-up agent components."""

    config: AgentConfig
    source: CounterSource
    state: NodeState
    sampler: UtilizationSampler
    publisher: Publisher
    scheduler: DualCadenceScheduler


def setup_logging(level: str) -> None:
    logging.basicConfig(level=level, format=LOG_FORMAT, datefmt=LOG_DATEFMT)


def build_agent(
    config: AgentConfig,
    source: CounterSource | None = None,
    publisher: Publisher | None = None,
) -> Agent:
    """
    Discover the node and wire sampler, state, publisher and scheduler.

    The counter source is read once here so a host that cannot be sampled
    fails at startup rather than on every cycle.

    Raises:
        ReadError: If the counter source cannot be read at startup.
    """
    if source is None:
        source = create_counter_source(config.counter_source, config.proc_root)
    if publisher is None:
        publisher = create_publisher(config)

    identity = discover_identity(config.node_id, config.cluster_id, source)
    memory_total_mb = source.total_memory_mb()
    probe = source.capture()
    if len(probe.cores) != identity.core_count:
        raise ReadError(f"counter source reports {len(probe.cores)} cores, expected {identity.core_count}")

    state = NodeState(identity, UtilizationSnapshot.initial(identity.core_count, memory_total_mb))
    sampler = UtilizationSampler(source, state, config.sampling_window, memory_total_mb)
    scheduler = DualCadenceScheduler(sampler, state, publisher, config.interval)
    return Agent(
        config=config,
        source=source,
        state=state,
        sampler=sampler,
        publisher=publisher,
        scheduler=scheduler,
    )


def run_once(agent: Agent) -> bool:
    """One resample followed by one publish. Returns True if both succeeded."""
    snapshot = agent.sampler.run_cycle()
    if snapshot is None:
        return False
    try:
        agent.publisher.publish(agent.state.identity, snapshot)
    except TransmitError as e:
        log.error("Publish failed: %s", e)
        return False
    return True


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Node telemetry agent")
    parser.add_argument("--config", help="Path to a JSON config file")
    cadence = parser.add_mutually_exclusive_group()
    cadence.add_argument("--interval", type=float, help="Resample/publish period in seconds (default: 1.0)")
    cadence.add_argument("--frequency", type=float, help="Resample/publish rate in Hz")
    parser.add_argument("--node-id", help="Node identifier (default: random UUID)")
    parser.add_argument("--cluster-id", help="Cluster identifier")
    parser.add_argument("--publish-url", help="Aggregator endpoint; snapshots are logged if omitted")
    parser.add_argument("--counter-source", choices=COUNTER_SOURCES, help="Where to read counters from")
    parser.add_argument("--log-level", help="Logging level (default: INFO)")
    mode = parser.add_mutually_exclusive_group()
    mode.add_argument("--tui", action="store_true", help="Show a live status view")
    mode.add_argument("--once", action="store_true", help="Sample and publish once, then exit")
    return parser


def main(argv: list[str] | None = None) -> int:
    """Entry point for the nodeagent daemon."""
    args = build_parser().parse_args(argv)

    try:
        config = load_config(
            args.config,
            interval=args.interval,
            frequency=args.frequency,
            node_id=args.node_id,
            cluster_id=args.cluster_id,
            publish_url=args.publish_url,
            counter_source=args.counter_source,
            log_level=args.log_level,
        )
    except ConfigError as e:
        print(f"ERROR: {e}", file=sys.stderr)
        return 2

    setup_logging(config.log_level)

    try:
        agent = build_agent(config)
    except ReadError as e:
        log.error("Counter source unusable: %s", e)
        return 1

    if args.once:
        return 0 if run_once(agent) else 1

    scheduler = agent.scheduler

    if args.tui:
        # Imported here so the daemon path does not load Textual
        from nodeagent.app import NodeStatusApp

        scheduler.start()
        NodeStatusApp(agent.state, scheduler).run()
        scheduler.stop()
        return 0

    signal.signal(signal.SIGTERM, lambda s, f: scheduler.request_stop())
    signal.signal(signal.SIGINT, lambda s, f: scheduler.request_stop())

    scheduler.start()
    scheduler.wait()
    log.info("Shutting down")
    scheduler.stop()
    return 0


if __name__ == "__main__":
    sys.exit(main())
