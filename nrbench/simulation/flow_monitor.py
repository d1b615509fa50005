"""
Per-flow statistics for the downlink flows.

Packets are classified by their 5-tuple when the remote host sends them and
matched again when a terminal receives them. The results are exported as a
text report and a CSV table.
"""

import os
import logging
from collections import Counter
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import pandas as pd
import simpy

from ..network.fabric import FiveTuple, Packet

logger = logging.getLogger(__name__)


@dataclass
class FlowStats:
    """Counters of one classified flow; byte counts include IP/UDP headers"""
    flow_id: int
    five_tuple: FiveTuple
    tx_packets: int = 0
    tx_bytes: int = 0
    rx_packets: int = 0
    rx_bytes: int = 0
    lost_packets: int = 0
    delay_sum: float = 0.0
    jitter_sum: float = 0.0
    last_delay: Optional[float] = None
    drops: Counter = field(default_factory=Counter)

    @property
    def mean_delay(self) -> float:
        return self.delay_sum / self.rx_packets if self.rx_packets else 0.0

    @property
    def mean_jitter(self) -> float:
        return self.jitter_sum / (self.rx_packets - 1) if self.rx_packets > 1 else 0.0


class FlowMonitor:
    """Probes on the sending and receiving nodes plus the drop points in between"""

    def __init__(self, env: simpy.Environment):
        self.env = env
        self.flows: Dict[FiveTuple, FlowStats] = {}

    def install(self, remote_host, ue_nodes, pgw=None, gnb_devices=(), flows=()):
        """Hook the probes; `flows` are listed in the report even if they never send"""
        for flow in flows:
            self.register(flow.five_tuple)
        remote_host.tx_listeners.append(self._on_tx)
        remote_host.drop_listeners.append(self._on_drop)
        for node in ue_nodes:
            node.rx_listeners.append(self._on_rx)
            node.drop_listeners.append(self._on_drop)
        if pgw is not None:
            pgw.drop_listeners.append(self._on_drop)
        for gnb in gnb_devices:
            gnb.drop_listeners.append(self._on_drop)

    def register(self, five_tuple: FiveTuple) -> FlowStats:
        stats = self.flows.get(five_tuple)
        if stats is None:
            stats = FlowStats(flow_id=len(self.flows) + 1, five_tuple=five_tuple)
            self.flows[five_tuple] = stats
        return stats

    def _on_tx(self, packet: Packet):
        stats = self.register(packet.five_tuple)
        stats.tx_packets += 1
        stats.tx_bytes += packet.size

    def _on_rx(self, packet: Packet):
        stats = self.flows.get(packet.five_tuple)
        if stats is None:
            return
        delay = self.env.now - packet.created_at
        stats.rx_packets += 1
        stats.rx_bytes += packet.size
        stats.delay_sum += delay
        if stats.last_delay is not None:
            stats.jitter_sum += abs(delay - stats.last_delay)
        stats.last_delay = delay

    def _on_drop(self, packet: Packet, reason: str):
        stats = self.flows.get(packet.five_tuple)
        if stats is None:
            return
        stats.lost_packets += 1
        stats.drops[reason] += 1

    def get_flow_stats(self) -> List[FlowStats]:
        return sorted(self.flows.values(), key=lambda s: s.flow_id)

    def to_dataframe(self, active_duration: float) -> pd.DataFrame:
        """One row per flow; rates in Mbps over the traffic active duration"""
        rows = []
        for stats in self.get_flow_stats():
            rows.append({
                'flow_id': stats.flow_id,
                'source': str(stats.five_tuple.source),
                'source_port': stats.five_tuple.source_port,
                'destination': str(stats.five_tuple.destination),
                'destination_port': stats.five_tuple.destination_port,
                'protocol': stats.five_tuple.protocol,
                'tx_packets': stats.tx_packets,
                'tx_bytes': stats.tx_bytes,
                'tx_offered_mbps': stats.tx_bytes * 8.0 / active_duration / 1e6,
                'rx_packets': stats.rx_packets,
                'rx_bytes': stats.rx_bytes,
                'throughput_mbps': (stats.rx_bytes * 8.0 / active_duration / 1e6
                                    if stats.rx_packets else 0.0),
                'mean_delay_ms': 1000.0 * stats.mean_delay,
                'mean_jitter_ms': 1000.0 * stats.mean_jitter,
                'lost_packets': stats.lost_packets,
            })
        return pd.DataFrame(rows)

    def write_report(self, path: str, active_duration: float):
        """Text report with per-flow counters and the mean flow throughput and delay"""
        df = self.to_dataframe(active_duration)
        os.makedirs(os.path.dirname(path) or ".", exist_ok=True)
        with open(path, 'w') as f:
            for _, row in df.iterrows():
                f.write(f"Flow {row['flow_id']} ({row['source']}:{row['source_port']} -> "
                        f"{row['destination']}:{row['destination_port']}) proto {row['protocol']}\n")
                f.write(f"  Tx Packets: {row['tx_packets']}\n")
                f.write(f"  Tx Bytes:   {row['tx_bytes']}\n")
                f.write(f"  TxOffered:  {row['tx_offered_mbps']:.6f} Mbps\n")
                f.write(f"  Rx Bytes:   {row['rx_bytes']}\n")
                f.write(f"  Throughput: {row['throughput_mbps']:.6f} Mbps\n")
                f.write(f"  Mean delay:  {row['mean_delay_ms']:.6f} ms\n")
                f.write(f"  Mean jitter:  {row['mean_jitter_ms']:.6f} ms\n")
                f.write(f"  Rx Packets: {row['rx_packets']}\n")

            mean_throughput = df['throughput_mbps'].mean() if not df.empty else 0.0
            mean_delay = df['mean_delay_ms'].mean() if not df.empty else 0.0
            f.write(f"\n\n  Mean flow throughput: {mean_throughput:.6f}\n")
            f.write(f"  Mean flow delay: {mean_delay:.6f}\n")
        logger.info(f"Flow report written to {path}")
        return df

    def write_csv(self, path: str, active_duration: float) -> pd.DataFrame:
        df = self.to_dataframe(active_duration)
        df.to_csv(path, index=False)
        return df
