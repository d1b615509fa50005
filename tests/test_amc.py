"""
Tests for error models, AMC and the band plan.
"""

import unittest
import sys
import os

# Add package root to path
sys.path.insert(0, os.path.join(os.path.dirname(__file__), '..'))

from nrbench.core.errors import ConfigurationError
from nrbench.network.amc import (MCS_TABLE_1, MCS_TABLE_2, TARGET_BLER, Amc, AmcModel, HarqMethod,
                                 available_error_models, lookup_error_model, parse_amc_model)
from nrbench.network.band import (OperationBand, num_resource_blocks, slot_duration,
                                  subcarrier_spacing, validate_numerology)


class TestErrorModelRegistry(unittest.TestCase):
    """Test error model lookup."""

    def test_lookup_with_and_without_prefix(self):
        self.assertIs(lookup_error_model("ns3::NrEesmCcT1"), lookup_error_model("NrEesmCcT1"))

    def test_tables_and_harq(self):
        self.assertEqual(lookup_error_model("ns3::NrEesmIrT2").mcs_table, MCS_TABLE_2)
        self.assertEqual(lookup_error_model("ns3::NrEesmIrT2").harq_method,
                         HarqMethod.INCREMENTAL_REDUNDANCY)
        self.assertEqual(lookup_error_model("ns3::NrEesmCcT1").mcs_table, MCS_TABLE_1)

    def test_unknown_error_model(self):
        with self.assertRaises(ConfigurationError):
            lookup_error_model("ns3::NoSuchErrorModel")

    def test_available(self):
        self.assertEqual(len(available_error_models()), 5)
        self.assertIn("ns3::NrLteMiErrorModel", available_error_models())


class TestErrorModel(unittest.TestCase):
    """Test the BLER curve."""

    def setUp(self):
        self.model = lookup_error_model("ns3::NrEesmCcT1")

    def test_bler_decreases_with_sinr(self):
        self.assertGreater(self.model.bler(0.0, 10), self.model.bler(20.0, 10))

    def test_bler_bounds(self):
        self.assertAlmostEqual(self.model.bler(-100.0, 28), 1.0, places=6)
        self.assertAlmostEqual(self.model.bler(100.0, 0), 0.0, places=6)

    def test_retransmissions_help(self):
        sinr = self.model.sinr_threshold_db(10)
        self.assertLess(self.model.bler(sinr, 10, attempts=2), self.model.bler(sinr, 10, attempts=1))

    def test_incremental_redundancy_gain(self):
        ir = lookup_error_model("ns3::NrEesmIrT1")
        self.assertGreater(ir.combining_gain_db(3), self.model.combining_gain_db(3))
        self.assertEqual(ir.combining_gain_db(1), 0.0)


class TestAmc(unittest.TestCase):
    """Test MCS selection."""

    def test_parse_amc_model(self):
        self.assertEqual(parse_amc_model("ErrorModel"), AmcModel.ERROR_MODEL)
        self.assertEqual(parse_amc_model("ShannonModel"), AmcModel.SHANNON)
        with self.assertRaises(ConfigurationError):
            parse_amc_model("Oracle")

    def test_error_model_selection_meets_target(self):
        amc = Amc(lookup_error_model("ns3::NrEesmCcT1"), AmcModel.ERROR_MODEL)
        mcs = amc.select_mcs(10.0)
        self.assertLessEqual(amc.error_model.bler(10.0, mcs), TARGET_BLER)

    def test_selection_grows_with_sinr(self):
        for model in AmcModel:
            amc = Amc(lookup_error_model("ns3::NrEesmCcT2"), model)
            self.assertLessEqual(amc.select_mcs(0.0), amc.select_mcs(25.0))

    def test_poor_link_gets_lowest_mcs(self):
        amc = Amc(lookup_error_model("ns3::NrEesmCcT1"), AmcModel.ERROR_MODEL)
        self.assertEqual(amc.select_mcs(-30.0), 0)

    def test_cqi_range(self):
        amc = Amc(lookup_error_model("ns3::NrEesmCcT1"), AmcModel.SHANNON)
        self.assertEqual(amc.cqi(-30.0), 0)
        self.assertEqual(amc.cqi(60.0), 15)

    def test_transport_block_size(self):
        amc = Amc(lookup_error_model("ns3::NrEesmCcT1"), AmcModel.ERROR_MODEL)
        self.assertEqual(amc.transport_block_size(0, 10), int(10 * 12 * 12 * MCS_TABLE_1[0]) // 8)
        self.assertGreater(amc.transport_block_size(20, 10), amc.transport_block_size(0, 10))


class TestBand(unittest.TestCase):
    """Test the operation band plan."""

    def test_contiguous_single_carrier(self):
        band = OperationBand.contiguous(30.5e9, 100e6)
        self.assertEqual(len(band.bandwidth_parts), 1)
        bwp = band.bandwidth_parts[0]
        self.assertAlmostEqual(bwp.central_frequency, 30.5e9)
        self.assertAlmostEqual(bwp.lower_frequency, 30.45e9)

    def test_contiguous_split(self):
        band = OperationBand.contiguous(30.5e9, 100e6, num_cc=2)
        self.assertEqual([cc.bandwidth for cc in band.carriers], [50e6, 50e6])

    def test_invalid_band(self):
        with self.assertRaises(ConfigurationError):
            OperationBand.contiguous(-1.0, 100e6)
        with self.assertRaises(ConfigurationError):
            OperationBand.contiguous(30.5e9, 100e6, num_cc=0)

    def test_numerology(self):
        self.assertEqual(subcarrier_spacing(1), 30e3)
        self.assertAlmostEqual(slot_duration(1), 0.0005)
        self.assertEqual(num_resource_blocks(100e6, 1), 277)
        with self.assertRaises(ConfigurationError):
            validate_numerology(5)


if __name__ == '__main__':
    unittest.main()
