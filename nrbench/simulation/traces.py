"""
Diagnostic trace files.

Each enabled trace channel writes one tab-separated text file with a header
line. The files are write-only outputs of the experiment.
"""

import os
import logging
from enum import Enum
from typing import Dict, List, Optional, TextIO

from ..core.phase import SetupPhase
from ..core.errors import ConfigurationError

logger = logging.getLogger(__name__)


class TraceChannel(Enum):
    """Trace channel: (name, file, header)"""
    PATHLOSS = ("pathloss", "Pathloss.txt",
                "Time(sec)\tCellId\tIMSI\tPathloss(dB)")
    DL_DATA_PHY = ("dl_data_phy", "DlDataSinr.txt",
                   "Time\tCellId\tRNTI\tBWPId\tSINR(dB)")
    DL_MAC_SCHED = ("dl_mac_sched", "NrDlMacStats.txt",
                    "Time\tCellId\tBWPId\tIMSI\tRNTI\tframe\tsframe\tslot\tsymStart\tnumSym"
                    "\tharqId\tndi\trv\tmcs\ttbSize")
    GNB_MAC_CTRL_MSGS = ("gnb_mac_ctrl_msgs", "RxedGnbMacCtrlMsgsTrace.txt",
                         "Time\tEntity\tFrame\tSF\tSlot\tnodeId\tRNTI\tbwpId\tMsgType")

    def __init__(self, channel_name: str, file_name: str, header: str):
        self.channel_name = channel_name
        self.file_name = file_name
        self.header = header

    @classmethod
    def from_name(cls, name: str) -> 'TraceChannel':
        for channel in cls:
            if channel.channel_name == name:
                return channel
        raise ConfigurationError(
            f"Unknown trace channel: {name}. Choose among {', '.join(c.channel_name for c in cls)}")


def _format(value) -> str:
    if isinstance(value, float):
        return f"{value:.6g}"
    return str(value)


class TraceSink:
    """Owns the open trace files and hooks them to the devices"""

    def __init__(self, output_directory: str, phase: Optional[SetupPhase] = None):
        self.output_directory = output_directory
        self.phase = phase or SetupPhase()
        self._files: Dict[TraceChannel, TextIO] = {}
        self.rows: Dict[TraceChannel, int] = {}

    @property
    def enabled(self) -> List[TraceChannel]:
        return list(self._files)

    def path(self, channel: TraceChannel) -> str:
        return os.path.join(self.output_directory, channel.file_name)

    def enable(self, channel: TraceChannel, gnb_devices, spectrum_channel):
        """Open the trace file and register the hook; enabling twice is a no-op"""
        self.phase.check("enable")
        if channel in self._files:
            return
        os.makedirs(self.output_directory, exist_ok=True)
        handle = open(self.path(channel), 'w')
        handle.write(channel.header + "\n")
        self._files[channel] = handle
        self.rows[channel] = 0

        if channel == TraceChannel.PATHLOSS:
            spectrum_channel.pathloss_listeners.append(self._pathloss_hook)
            return

        hook_name = {
            TraceChannel.DL_DATA_PHY: 'dl_data_sinr',
            TraceChannel.DL_MAC_SCHED: 'dl_mac_sched',
            TraceChannel.GNB_MAC_CTRL_MSGS: 'rx_ctrl_msg',
        }[channel]
        for gnb in gnb_devices:
            gnb.trace_listeners[hook_name].append(lambda row, c=channel: self.write(c, row))
        logger.info(f"Trace {channel.channel_name} -> {self.path(channel)}")

    def enable_all(self, names, gnb_devices, spectrum_channel):
        for name in names:
            self.enable(TraceChannel.from_name(name), gnb_devices, spectrum_channel)

    def _pathloss_hook(self, now, gnb, ue, loss_db):
        self.write(TraceChannel.PATHLOSS, (now, gnb.cell_id, ue.imsi, loss_db))

    def write(self, channel: TraceChannel, row):
        handle = self._files.get(channel)
        if handle is None:
            return
        handle.write("\t".join(_format(value) for value in row) + "\n")
        self.rows[channel] += 1

    def close(self):
        for handle in self._files.values():
            handle.close()
        self._files.clear()
