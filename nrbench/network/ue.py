"""
User Equipment (UE) device for the NR experiment

The UE decodes downlink transport blocks against the error model, answers
each reception with HARQ feedback and a CQI report, and hands completed
packets to its IP stack.
"""

import logging
from typing import Dict, Optional

import numpy as np
import simpy

from .amc import Amc
from ..mobility.topology import Terminal

logger = logging.getLogger(__name__)


class UeDevice:
    """
    5G UE net device

    Features:
    - Constant-velocity position taken from the terminal mobility
    - TB decoding with the configured error model and its own random stream
    - DL_HARQ and DL_CQI control messages towards the serving gNB
    """

    def __init__(self, env: simpy.Environment, terminal: Terminal, node, channel,
                 amc: Amc, tx_power: float):
        self.env = env
        self.terminal = terminal
        self.node = node
        self.amc = amc
        self.tx_power = tx_power  # dBm
        self.antenna = channel.create_ue_antenna()

        self.stream: Optional[int] = None
        self.rng: Optional[np.random.Generator] = None

        self.address = None
        self.serving_gnb = None
        self.rnti: Optional[int] = None

        self.stats = {
            'tbs_received': 0,
            'tbs_corrupted': 0,
            'packets_received': 0,
            'sinr_sum_db': 0.0,
        }

    @property
    def ue_id(self) -> int:
        return self.terminal.ue_id

    @property
    def imsi(self) -> int:
        return self.terminal.ue_id + 1

    def position(self, now: float):
        return self.terminal.mobility.get_position(now)

    def assign_stream(self, stream: int, rng: np.random.Generator) -> int:
        self.stream = stream
        self.rng = rng
        return 1

    def attach(self, gnb):
        self.serving_gnb = gnb
        self.rnti = gnb.attach(self)

    def is_attached(self) -> bool:
        return self.serving_gnb is not None

    def receive_transport_block(self, tb, sinr_db: float) -> bool:
        """
        Decode a TB and send feedback.

        Returns:
            True if the TB is corrupted
        """
        bler = self.amc.error_model.bler(sinr_db, tb.mcs, tb.attempts)
        corrupted = bool(self.rng.random() < bler)

        self.stats['tbs_received'] += 1
        self.stats['sinr_sum_db'] += sinr_db
        if corrupted:
            self.stats['tbs_corrupted'] += 1

        self.serving_gnb.receive_ctrl_message(self, "DL_HARQ")
        self.serving_gnb.receive_cqi(self, self.amc.cqi(sinr_db), sinr_db)
        return corrupted

    def forward_up(self, packet):
        self.stats['packets_received'] += 1
        self.node.receive(packet)

    def transmit(self, node, packet):
        # uplink data is not modeled
        node.drop(packet, "NoUplink")

    def get_statistics(self) -> Dict:
        """Get UE performance statistics"""
        stats = self.stats.copy()
        stats.update({
            'ue_id': self.ue_id,
            'imsi': self.imsi,
            'address': str(self.address) if self.address else None,
            'serving_cell': self.serving_gnb.cell_id if self.serving_gnb else None,
            'rnti': self.rnti,
        })
        if stats['tbs_received'] > 0:
            stats['average_sinr_db'] = stats['sinr_sum_db'] / stats['tbs_received']
        else:
            stats['average_sinr_db'] = 0.0
        return stats
