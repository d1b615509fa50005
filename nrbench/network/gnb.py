"""
gNodeB (gNB) device for the NR experiment

This module implements the gNB net device: per-UE RLC transmit buffers, a
slot-based downlink scheduler with adaptive MCS and HARQ, and the trace
hooks for data SINR, MAC scheduling decisions and received control messages.
"""

import math
import logging
from dataclasses import dataclass, field
from typing import Dict, List, Optional

import numpy as np
import simpy

from .amc import MAX_HARQ_ATTEMPTS, Amc
from .band import BandwidthPart, num_resource_blocks, slot_duration
from .fabric import Packet
from .propagation import thermal_noise_power_dbm
from ..mobility.topology import BaseStation

logger = logging.getLogger(__name__)

UE_NOISE_FIGURE = 5.0  # dB
NUM_HARQ_PROCESSES = 16
DL_CTRL_SYMBOLS = 1
DL_DATA_SYMBOLS = 12


@dataclass
class RlcSdu:
    """A packet waiting in (or partly sent from) the RLC buffer"""
    packet: Packet
    remaining: int
    lost: bool = False


@dataclass
class RlcSegment:
    sdu: RlcSdu
    size: int
    is_last: bool


class RlcBuffer:
    """RLC UM transmit buffer of one UE, limited in bytes"""

    def __init__(self, max_size: int):
        self.max_size = max_size
        self.sdus: List[RlcSdu] = []
        self.size = 0

    def enqueue(self, packet: Packet) -> bool:
        if self.size + packet.size > self.max_size:
            return False
        self.sdus.append(RlcSdu(packet, packet.size))
        self.size += packet.size
        return True

    def dequeue(self, max_bytes: int) -> List[RlcSegment]:
        """Take up to `max_bytes` from the head, segmenting the last SDU if needed"""
        segments = []
        while self.sdus and max_bytes > 0:
            sdu = self.sdus[0]
            size = min(sdu.remaining, max_bytes)
            sdu.remaining -= size
            max_bytes -= size
            self.size -= size
            segments.append(RlcSegment(sdu, size, sdu.remaining == 0))
            if sdu.remaining == 0:
                self.sdus.pop(0)
        return segments


@dataclass
class TransportBlock:
    ue: object
    rnti: int
    harq_id: int
    ndi: int
    mcs: int
    num_rbs: int
    size: int
    segments: List[RlcSegment] = field(default_factory=list)
    attempts: int = 1

    @property
    def rv(self) -> int:
        return self.attempts - 1


@dataclass
class UeContext:
    """Per-UE MAC state kept by the gNB"""
    ue: object
    rnti: int
    rlc: RlcBuffer
    last_sinr_db: Optional[float] = None
    last_cqi: int = 0
    next_harq_id: int = 0
    ndi: Dict[int, int] = field(default_factory=dict)
    retransmission: Optional[TransportBlock] = None


class GnbDevice:
    """
    5G gNodeB net device

    Features:
    - One BWP, numerology-dependent slot length and RB count
    - Equal RB split among UEs with data, adaptive MCS from CQI feedback
    - HARQ with up to 4 transmissions per transport block
    - Scheduler idles while no RLC buffer holds data
    """

    def __init__(self, env: simpy.Environment, cell_id: int, base_station: BaseStation,
                 node, bwp: BandwidthPart, channel, amc: Amc, tx_power: float,
                 numerology: int, rlc_buffer_size: int):
        self.env = env
        self.cell_id = cell_id
        self.base_station = base_station
        self.node = node
        self.bwp = bwp
        self.channel = channel
        self.amc = amc
        self.tx_power = tx_power  # dBm
        self.numerology = numerology
        self.rlc_buffer_size = rlc_buffer_size
        self.antenna = channel.create_gnb_antenna(base_station.bearing)

        self.slot_duration = slot_duration(numerology)
        self.slots_per_subframe = 2 ** numerology
        self.num_rbs = num_resource_blocks(bwp.bandwidth, numerology)
        self.noise_power_dbm = thermal_noise_power_dbm(bwp.bandwidth, UE_NOISE_FIGURE)

        self.stream: Optional[int] = None
        self.rng: Optional[np.random.Generator] = None

        self.ues: Dict[int, UeContext] = {}  # rnti -> context
        self._next_rnti = 1
        self._wakeup: Optional[simpy.Event] = None
        self._scheduler = None

        self.trace_listeners: Dict[str, List] = {
            'dl_data_sinr': [],
            'dl_mac_sched': [],
            'rx_ctrl_msg': [],
        }
        self.drop_listeners: List = []

        self.stats = {
            'tbs_sent': 0,
            'tbs_corrupted': 0,
            'harq_failures': 0,
            'rlc_drops': 0,
            'bytes_delivered': 0,
        }

        logger.info(f"gNB cell {cell_id} at ({base_station.position.x:.1f}, {base_station.position.y:.1f}) "
                    f"with {self.num_rbs} RBs, slot {self.slot_duration * 1e3:.3f} ms")

    def position(self, now: float):
        return self.base_station.mobility.get_position(now)

    def assign_stream(self, stream: int, rng: np.random.Generator) -> int:
        self.stream = stream
        self.rng = rng
        return 1

    def attach(self, ue) -> int:
        """Register a UE and return its RNTI"""
        rnti = self._next_rnti
        self._next_rnti += 1
        self.ues[rnti] = UeContext(ue=ue, rnti=rnti, rlc=RlcBuffer(self.rlc_buffer_size))
        if self._scheduler is None:
            self._scheduler = self.env.process(self._scheduling_process())
        logger.info(f"UE IMSI {ue.imsi} attached to cell {self.cell_id} with RNTI {rnti}")
        return rnti

    def enqueue_downlink(self, ue, packet: Packet):
        """S1-U entry point: place a packet in the RLC buffer of `ue`"""
        context = self.ues[ue.rnti]
        if not context.rlc.enqueue(packet):
            self.stats['rlc_drops'] += 1
            self._notify_drop(packet, "RlcBufferFull")
            return
        if self._wakeup is not None and not self._wakeup.triggered:
            self._wakeup.succeed()

    def receive_ctrl_message(self, ue, msg_type: str):
        self._trace('rx_ctrl_msg', self.env.now, "ENB MAC Rxed", *self.frame_numbers(),
                    self.node.node_id, ue.rnti, self.bwp.bwp_id, msg_type)

    def receive_cqi(self, ue, cqi: int, sinr_db: float):
        context = self.ues[ue.rnti]
        context.last_cqi = cqi
        context.last_sinr_db = sinr_db
        self.receive_ctrl_message(ue, "DL_CQI")

    def frame_numbers(self):
        """(frame, subframe, slot) of the current time"""
        index = int(round(self.env.now / self.slot_duration))
        slots_per_frame = 10 * self.slots_per_subframe
        return (index // slots_per_frame,
                (index // self.slots_per_subframe) % 10,
                index % self.slots_per_subframe)

    def _has_pending(self) -> bool:
        return any(c.retransmission is not None or c.rlc.size > 0 for c in self.ues.values())

    def _scheduling_process(self):
        """Slot loop: schedule, transmit for one slot, then resolve HARQ"""
        while True:
            if not self._has_pending():
                self._wakeup = self.env.event()
                yield self._wakeup
                self._wakeup = None
                # align to the next slot boundary
                next_slot = math.ceil(self.env.now / self.slot_duration - 1e-9) * self.slot_duration
                if next_slot > self.env.now:
                    yield self.env.timeout(next_slot - self.env.now)

            allocations = self._schedule_slot()
            start = self.env.now
            self.channel.start_transmission(self, start, start + self.slot_duration)
            yield self.env.timeout(self.slot_duration)
            self._complete_slot(allocations)

    def _schedule_slot(self) -> List[TransportBlock]:
        active = [c for rnti, c in sorted(self.ues.items())
                  if c.retransmission is not None or c.rlc.size > 0]
        if not active:
            return []

        share, leftover = divmod(self.num_rbs, len(active))
        # leftover RBs go to a random rotation of the active UEs
        offset = int(self.rng.integers(len(active))) if self.rng is not None else 0
        allocations = []
        for position, context in enumerate(active):
            num_rbs = share + (1 if (position - offset) % len(active) < leftover else 0)
            if num_rbs == 0:
                continue
            tb = self._build_transport_block(context, num_rbs)
            if tb is None:
                continue
            allocations.append(tb)
            self.stats['tbs_sent'] += 1
            self._trace('dl_mac_sched', self.env.now, self.cell_id, self.bwp.bwp_id,
                        tb.ue.imsi, tb.rnti, *self.frame_numbers(), DL_CTRL_SYMBOLS,
                        DL_DATA_SYMBOLS, tb.harq_id, tb.ndi, tb.rv, tb.mcs, tb.size)
        return allocations

    def _build_transport_block(self, context: UeContext, num_rbs: int) -> Optional[TransportBlock]:
        if context.retransmission is not None:
            tb = context.retransmission
            context.retransmission = None
            tb.attempts += 1
            return tb

        # MCS 0 until the first CQI report arrives
        mcs = self.amc.select_mcs(context.last_sinr_db) if context.last_sinr_db is not None else 0
        size = self.amc.transport_block_size(mcs, num_rbs)
        segments = context.rlc.dequeue(size)
        if not segments:
            return None

        harq_id = context.next_harq_id
        context.next_harq_id = (harq_id + 1) % NUM_HARQ_PROCESSES
        context.ndi[harq_id] = 1 - context.ndi.get(harq_id, 0)
        return TransportBlock(ue=context.ue, rnti=context.rnti, harq_id=harq_id,
                              ndi=context.ndi[harq_id], mcs=mcs, num_rbs=num_rbs,
                              size=size, segments=segments)

    def _complete_slot(self, allocations: List[TransportBlock]):
        now = self.env.now
        for tb in allocations:
            sinr = self.channel.dl_sinr_db(self, tb.ue, now, self.noise_power_dbm)
            self._trace('dl_data_sinr', now, self.cell_id, tb.rnti, self.bwp.bwp_id, sinr)
            corrupted = tb.ue.receive_transport_block(tb, sinr)
            if not corrupted:
                self._deliver(tb)
            elif tb.attempts < MAX_HARQ_ATTEMPTS:
                self.stats['tbs_corrupted'] += 1
                self.ues[tb.rnti].retransmission = tb
            else:
                self.stats['tbs_corrupted'] += 1
                self.stats['harq_failures'] += 1
                self._discard(tb)

    def _deliver(self, tb: TransportBlock):
        for segment in tb.segments:
            self.stats['bytes_delivered'] += segment.size
            if segment.is_last and not segment.sdu.lost:
                tb.ue.forward_up(segment.sdu.packet)

    def _discard(self, tb: TransportBlock):
        logger.debug(f"Cell {self.cell_id}: HARQ process {tb.harq_id} of RNTI {tb.rnti} "
                     f"failed after {tb.attempts} transmissions")
        for segment in tb.segments:
            if not segment.sdu.lost:
                segment.sdu.lost = True
                self._notify_drop(segment.sdu.packet, "HarqFailure")

    def _notify_drop(self, packet: Packet, reason: str):
        for listener in self.drop_listeners:
            listener(packet, reason)

    def _trace(self, name: str, *row):
        for listener in self.trace_listeners[name]:
            listener(row)

    def get_statistics(self) -> Dict:
        """Get gNB performance statistics"""
        stats = self.stats.copy()
        stats.update({
            'cell_id': self.cell_id,
            'attached_ues': len(self.ues),
            'resource_blocks': self.num_rbs,
            'buffered_bytes': sum(c.rlc.size for c in self.ues.values()),
        })
        return stats
