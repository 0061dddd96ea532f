import argparse
import logging
import signal
import sys
import threading

from mavsniff.config.loader import ConfigError, SnifferConfig, load_config
from mavsniff.core.registry import VehicleRegistry
from mavsniff.routers.console import ConsoleSink
from mavsniff.transports.udp_listener import ListenerSession, SessionError


def build_parser() -> argparse.ArgumentParser:
    p = argparse.ArgumentParser("mavsniff", description="Print HEARTBEAT and GLOBAL_POSITION_INT telemetry from a MAVLink v2 UDP link")
    p.add_argument("--config", "-c", help="Path to YAML config")
    p.add_argument("--local", type=int, help="local listen port (the autopilot's remote_port)")
    p.add_argument("--listen-host", help="local listen address")
    p.add_argument("--veh-port", type=int, help="vehicle udp_port (from 'mavlink status')")
    p.add_argument("--veh-host", help="vehicle host")
    p.add_argument("--read-timeout", type=float, help="seconds between cancellation checks while idle")
    p.add_argument("--mqtt", action="store_true", help="also publish records to the configured MQTT broker")
    p.add_argument("--names", action="store_true", help="print MAVLink enum names instead of numbers")
    p.add_argument("--log-level", help="DEBUG, INFO, WARNING, ...")
    return p


def apply_args(cfg: SnifferConfig, args) -> SnifferConfig:
    # flags win over file values
    if args.local is not None:
        cfg.listen.port = args.local
    if args.listen_host:
        cfg.listen.host = args.listen_host
    if args.veh_port is not None:
        cfg.vehicle.port = args.veh_port
    if args.veh_host:
        cfg.vehicle.host = args.veh_host
    if args.read_timeout is not None:
        cfg.read_timeout = args.read_timeout
    if args.mqtt:
        cfg.mqtt.enabled = True
    if args.names:
        cfg.enum_names = True
    if args.log_level:
        cfg.log_level = args.log_level
    return cfg


def run(cfg: SnifferConfig, stop_event: threading.Event, sinks=None, on_ready=None) -> int:
    """Run a listener session until ``stop_event`` is set."""
    registry = VehicleRegistry()
    if sinks is None:
        sinks = [ConsoleSink(names=cfg.enum_names)]
    sinks = list(sinks)
    mqtt_router = None
    if cfg.mqtt.enabled:
        from mavsniff.routers.mqtt_router import MQTTRouter
        # the router upserts into the registry itself
        mqtt_router = MQTTRouter("broker", cfg.mqtt.model_dump(), registry=registry)
        mqtt_router.start()
        sinks.append(mqtt_router)
    else:
        sinks.insert(0, registry)

    session = ListenerSession(
        listen=(cfg.listen.host, cfg.listen.port),
        announce_to=(cfg.vehicle.host, cfg.vehicle.port),
        sinks=sinks,
        read_timeout=cfg.read_timeout,
    )
    try:
        session.bind()
        laddr = session.local_address
        print(f"listening on {laddr[0]}:{laddr[1]}; announcing to {cfg.vehicle.host}:{cfg.vehicle.port}...")
        session.announce()
    except SessionError as e:
        logging.error(f"[mavsniff] {e}")
        session.close()
        if mqtt_router is not None:
            mqtt_router.stop()
        return 1

    session.start()
    if on_ready is not None:
        on_ready(session)
    # Event.wait with a timeout keeps the main thread responsive to signals
    while not stop_event.wait(0.5):
        pass

    print("\nShutting down gracefully...")
    session.stop()
    if mqtt_router is not None:
        mqtt_router.stop()
    logging.info(f"[mavsniff] stats {session.stats()} vehicles={list(registry.snapshot())}")
    print("bye")
    return 0


def main(argv=None) -> int:
    args = build_parser().parse_args(argv)
    try:
        cfg = apply_args(load_config(args.config), args)
    except ConfigError as e:
        print(f"config error: {e}", file=sys.stderr)
        return 2

    logging.basicConfig(
        level=getattr(logging, str(cfg.log_level).upper(), logging.INFO),
        format="%(asctime)s %(levelname)s %(message)s",
    )

    stop_event = threading.Event()

    def _on_signal(signum, _frame):
        logging.debug(f"[mavsniff] received signal {signum}")
        stop_event.set()

    signal.signal(signal.SIGINT, _on_signal)
    signal.signal(signal.SIGTERM, _on_signal)
    return run(cfg, stop_event)


if __name__ == "__main__":
    sys.exit(main())
