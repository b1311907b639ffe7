#!/usr/bin/env python3
"""Test suite for the Doppler residual block"""

import unittest
from concurrent.futures import ThreadPoolExecutor

import numpy as np

from pydoppler.attitude.quaternion import quat_normalize
from pydoppler.coordinate import GeoCoordinate, GeoType
from pydoppler.core.constants import CLIGHT, OMGE
from pydoppler.core.data_structures import GnssMeasurement, GnssObservation, GnssSatellite
from pydoppler.core.errors import ConfigurationError, PreconditionError
from pydoppler.core.params import GnssErrorParameter
from pydoppler.estimate import ParameterBlockGroup, PoseLocalParameterization
from pydoppler.factors import DopplerError, predict_doppler

DIRECT = (3, 3, 1)
BODY = (7, 9, 3, 1)

ORIGIN_ECEF = np.array([-2148744.0, 4426641.0, 4044655.0])
SAT_POSITION = np.array([15600e3, 7540e3, 20140e3])
SAT_VELOCITY = np.array([-1200.0, 2400.0, 600.0])


def make_measurement(doppler, prn='G05', sat_position=SAT_POSITION,
                     sat_velocity=SAT_VELOCITY, sat_frequency=0.2):
    measurement = GnssMeasurement(timestamp=1000.0)
    measurement.add_satellite(GnssSatellite(prn, sat_position, sat_velocity,
                                            sat_frequency=sat_frequency))
    index = measurement.add_observation(GnssObservation(prn, 'L1C', doppler=doppler))
    return measurement, index


def jacobian_buffers(sizes, fill=0.0):
    return [np.full((1, size), fill) for size in sizes]


class TestDopplerPrediction(unittest.TestCase):
    """Prediction on a geometry with a closed-form answer"""

    def setUp(self):
        self.satellite = GnssSatellite('G01', [2.0e7, 0.0, 0.0], [0.0, 3000.0, 0.0])
        self.receiver = np.array([6.378e6, 0.0, 0.0])

    def test_earth_rotation_term(self):
        prediction = predict_doppler(self.satellite, self.receiver, np.zeros(3), 0.0)
        expected = OMGE / CLIGHT * 3000.0 * 6.378e6
        self.assertAlmostEqual(prediction.rho, 2.0e7 - 6.378e6, places=6)
        np.testing.assert_allclose(prediction.e, [1.0, 0.0, 0.0])
        self.assertAlmostEqual(prediction.range_rate, expected, places=10)
        self.assertAlmostEqual(prediction.doppler_estimate, expected, places=10)

    def test_clock_terms(self):
        satellite = GnssSatellite('G01', [2.0e7, 0.0, 0.0], [0.0, 3000.0, 0.0], sat_frequency=1.5)
        base = predict_doppler(self.satellite, self.receiver, np.zeros(3), 0.0)
        prediction = predict_doppler(satellite, self.receiver, np.zeros(3), 4.0)
        self.assertAlmostEqual(prediction.doppler_estimate - base.doppler_estimate, 2.5, places=10)

    def test_receding_receiver(self):
        # Receiver moving away from the satellite increases the range rate
        prediction = predict_doppler(self.satellite, self.receiver, np.array([-10.0, 0.0, 0.0]), 0.0)
        base = predict_doppler(self.satellite, self.receiver, np.zeros(3), 0.0)
        self.assertAlmostEqual(prediction.range_rate - base.range_rate, 10.0, places=3)

    def test_azimuth_elevation(self):
        prediction = predict_doppler(self.satellite, self.receiver, np.zeros(3), 0.0,
                                     compute_azel=True)
        self.assertAlmostEqual(prediction.elevation, np.pi / 2, places=9)
        self.assertIsNone(predict_doppler(self.satellite, self.receiver, np.zeros(3), 0.0).elevation)

    def test_degenerate_range(self):
        with self.assertRaises(ValueError):
            predict_doppler(self.satellite, np.array([2.0e7, 0.0, 0.0]), np.zeros(3), 0.0)

    def test_zero_residual_when_observed(self):
        expected = OMGE / CLIGHT * 3000.0 * 6.378e6
        measurement, index = make_measurement(expected, 'G01', [2.0e7, 0.0, 0.0],
                                              [0.0, 3000.0, 0.0], 0.0)
        factor = DopplerError(measurement, index, GnssErrorParameter(), DIRECT)
        residual = factor.evaluate([self.receiver, np.zeros(3), np.zeros(1)])
        self.assertEqual(residual.shape, (1,))
        self.assertAlmostEqual(residual[0], 0.0, places=9)


class TestDopplerErrorDirect(unittest.TestCase):
    """Receiver ECEF position, velocity and clock frequency blocks"""

    def setUp(self):
        self.position = ORIGIN_ECEF.copy()
        self.velocity = np.array([3.0, -1.5, 0.7])
        self.clock = np.array([42.0])
        satellite = GnssSatellite('G05', SAT_POSITION, SAT_VELOCITY, sat_frequency=0.2)
        predicted = predict_doppler(satellite, self.position, self.velocity, self.clock[0])
        self.observed = predicted.doppler_estimate + 0.3
        self.measurement, self.index = make_measurement(self.observed)
        self.error_parameter = GnssErrorParameter(doppler_error_factor=0.5)
        self.factor = DopplerError(self.measurement, self.index, self.error_parameter, DIRECT)

    def parameters(self):
        return [self.position.copy(), self.velocity.copy(), self.clock.copy()]

    def test_layout(self):
        self.assertEqual(self.factor.group, ParameterBlockGroup.DIRECT)
        self.assertEqual(self.factor.residual_dim, 1)
        self.assertEqual(self.factor.parameter_block_sizes, DIRECT)
        self.assertEqual(self.factor.parameter_block_minimal_sizes, DIRECT)
        self.assertEqual(self.factor.num_parameter_blocks, 3)
        self.assertEqual(self.factor.parameter_block_dim(1), 3)
        self.assertEqual(self.factor.type_info(), 'DopplerError')

    def test_weighting(self):
        np.testing.assert_allclose(self.factor.covariance, [[0.25]])
        np.testing.assert_allclose(self.factor.information, [[4.0]])
        np.testing.assert_allclose(self.factor.square_root_information, [[2.0]])
        np.testing.assert_allclose(self.factor.square_root_information_inverse, [[0.5]])
        with self.assertRaises(ValueError):
            self.factor.information[0, 0] = 1.0

        residual = self.factor.evaluate(self.parameters())
        self.assertAlmostEqual(residual[0], 2.0 * 0.3, places=8)

    def test_system_error_ratio(self):
        weights = []
        for ratio in [0.5, 1.0, 2.0, 4.0]:
            params = GnssErrorParameter(doppler_error_factor=0.5, system_error_ratio={'G': ratio})
            factor = DopplerError(self.measurement, self.index, params, DIRECT)
            self.assertAlmostEqual(factor.square_root_information[0, 0], 1.0 / (0.5 * ratio))
            weights.append(factor.square_root_information[0, 0])
        self.assertTrue(all(a > b for a, b in zip(weights, weights[1:])))

    def test_missing_system_ratio(self):
        params = GnssErrorParameter(system_error_ratio={'E': 1.0})
        with self.assertLogs('pydoppler.factors.doppler_error', level='CRITICAL'):
            with self.assertRaises(ConfigurationError):
                DopplerError(self.measurement, self.index, params, DIRECT)

    def test_invalid_block_sizes(self):
        with self.assertRaises(ConfigurationError):
            DopplerError(self.measurement, self.index, self.error_parameter, (3, 3))
        with self.assertRaises(ConfigurationError):
            DopplerError(self.measurement, self.index, self.error_parameter, (6, 9, 3, 1))

    def test_unknown_index(self):
        measurement = GnssMeasurement(timestamp=0.0)
        with self.assertRaises(KeyError):
            DopplerError(measurement, self.index, self.error_parameter, DIRECT)

    def test_analytic_jacobians(self):
        jacobians = jacobian_buffers(DIRECT, fill=7.0)
        residual = self.factor.evaluate(self.parameters(), jacobians)
        np.testing.assert_allclose(residual, self.factor.evaluate(self.parameters()))

        e = (SAT_POSITION - self.position) / np.linalg.norm(SAT_POSITION - self.position)
        # Line of sight held fixed: no position sensitivity
        np.testing.assert_array_equal(jacobians[0], np.zeros((1, 3)))
        np.testing.assert_allclose(jacobians[1], 2.0 * e.reshape(1, 3), atol=1e-12)
        np.testing.assert_allclose(jacobians[2], [[-2.0]])

    def test_numerical_jacobians(self):
        jacobians = jacobian_buffers(DIRECT)
        self.factor.evaluate(self.parameters(), jacobians)

        h = 1e-5
        for block in (1, 2):
            J_num = np.zeros((1, DIRECT[block]))
            for i in range(DIRECT[block]):
                p_plus = self.parameters()
                p_minus = self.parameters()
                p_plus[block][i] += h
                p_minus[block][i] -= h
                J_num[0, i] = (self.factor.evaluate(p_plus)[0] -
                               self.factor.evaluate(p_minus)[0]) / (2 * h)
            np.testing.assert_allclose(jacobians[block], J_num, atol=1e-4,
                                       err_msg=f"block {block}")

    def test_minimal_equals_raw(self):
        jacobians = jacobian_buffers(DIRECT)
        jacobians_minimal = jacobian_buffers(DIRECT)
        self.factor.evaluate_with_minimal_jacobians(self.parameters(), jacobians, jacobians_minimal)
        for J, J_min in zip(jacobians, jacobians_minimal):
            np.testing.assert_array_equal(J, J_min)

    def test_skipped_slots(self):
        jacobians = [None, np.zeros(3), None]
        jacobians_minimal = [np.full(3, np.nan), None, np.full(1, np.nan)]
        self.factor.evaluate_with_minimal_jacobians(self.parameters(), jacobians, jacobians_minimal)
        self.assertTrue(np.all(jacobians[1] != 0.0))
        # Minimal slots are only written together with their raw slot
        self.assertTrue(np.all(np.isnan(jacobians_minimal[0])))
        self.assertTrue(np.all(np.isnan(jacobians_minimal[2])))

    def test_invalid_buffers(self):
        with self.assertRaises(ValueError):
            self.factor.evaluate(self.parameters(), [None, np.zeros(4), None])
        with self.assertRaises(ValueError):
            self.factor.evaluate(self.parameters(), [None, np.zeros(3, dtype=np.float32), None])
        with self.assertRaises(ValueError):
            self.factor.evaluate(self.parameters(), [None, np.zeros(3)])
        with self.assertRaises(ValueError):
            self.factor.evaluate([self.position[:2], self.velocity, self.clock])
        with self.assertRaises(ValueError):
            self.factor.evaluate([self.position, self.velocity])

    def test_evaluation_does_not_modify_parameters(self):
        parameters = self.parameters()
        self.factor.evaluate(parameters, jacobian_buffers(DIRECT))
        np.testing.assert_array_equal(parameters[0], self.position)
        np.testing.assert_array_equal(parameters[1], self.velocity)

    def test_angular_velocity_ignored(self):
        factor = DopplerError(self.measurement, self.index, self.error_parameter, DIRECT,
                              angular_velocity=np.array([0.0, 0.0, 5.0]))
        np.testing.assert_allclose(factor.evaluate(self.parameters()),
                                   self.factor.evaluate(self.parameters()))

    def test_predict(self):
        prediction = self.factor.predict(self.parameters())
        self.assertAlmostEqual(prediction.doppler_estimate, self.observed - 0.3, places=8)
        self.assertGreater(prediction.elevation, 0.0)

    def test_concurrent_evaluation(self):
        expected_jacobians = jacobian_buffers(DIRECT)
        expected = self.factor.evaluate(self.parameters(), expected_jacobians)

        def run(_):
            jacobians = jacobian_buffers(DIRECT)
            residual = self.factor.evaluate(self.parameters(), jacobians)
            return residual, jacobians

        with ThreadPoolExecutor(max_workers=4) as executor:
            results = list(executor.map(run, range(64)))

        for residual, jacobians in results:
            np.testing.assert_array_equal(residual, expected)
            for J, J_expected in zip(jacobians, expected_jacobians):
                np.testing.assert_array_equal(J, J_expected)


class TestDopplerErrorBodyReferenced(unittest.TestCase):
    """Body pose, speed and bias, lever arm and clock frequency blocks"""

    def setUp(self):
        self.coordinate = GeoCoordinate(ORIGIN_ECEF)
        self.omega = np.array([0.05, -0.1, 0.3])
        self.pose = np.concatenate([[12.0, -7.0, 3.0], quat_normalize([0.1, -0.2, 0.3, 0.927])])
        self.speed_and_bias = np.array([1.5, -0.8, 0.2, 0.01, -0.02, 0.005, 0.001, 0.002, -0.001])
        self.lever_arm = np.array([0.5, -0.3, 1.2])
        self.clock = np.array([35.0])

        self.measurement, self.index = make_measurement(0.0)
        factor = self.make_factor()
        predicted = factor.predict(self.parameters())
        self.measurement, self.index = make_measurement(predicted.doppler_estimate + 0.3)
        self.factor = self.make_factor()

    def make_factor(self, **kwargs):
        kwargs.setdefault('angular_velocity', self.omega)
        kwargs.setdefault('coordinate', self.coordinate)
        return DopplerError(self.measurement, self.index,
                            GnssErrorParameter(doppler_error_factor=0.5), BODY, **kwargs)

    def parameters(self):
        return [self.pose.copy(), self.speed_and_bias.copy(),
                self.lever_arm.copy(), self.clock.copy()]

    def evaluate_all(self):
        jacobians = jacobian_buffers(BODY)
        jacobians_minimal = jacobian_buffers(self.factor.parameter_block_minimal_sizes)
        residual = self.factor.evaluate_with_minimal_jacobians(
            self.parameters(), jacobians, jacobians_minimal)
        return residual, jacobians, jacobians_minimal

    def velocity_residual(self, parameters, t_fixed):
        """Weighted residual with the antenna position frozen"""
        state = self.factor.decode_state(parameters)
        prediction = predict_doppler(self.factor.satellite, t_fixed, state.v_WR_ECEF,
                                     state.clock_frequency)
        W = self.factor.square_root_information[0, 0]
        return W * (self.factor.observation.doppler - prediction.doppler_estimate)

    def test_layout(self):
        self.assertEqual(self.factor.group, ParameterBlockGroup.BODY_REFERENCED)
        self.assertEqual(self.factor.parameter_block_sizes, BODY)
        self.assertEqual(self.factor.parameter_block_minimal_sizes, (6, 9, 3, 1))

    def test_residual(self):
        residual, _, _ = self.evaluate_all()
        self.assertAlmostEqual(residual[0], 0.6, places=8)

    def test_decode_state(self):
        state = self.factor.decode_state(self.parameters())
        lever_arm_W = state.R_WS @ self.lever_arm
        expected_t = self.coordinate.convert(self.pose[0:3] + lever_arm_W, GeoType.ENU, GeoType.ECEF)
        expected_v = self.coordinate.rotate(
            self.speed_and_bias[0:3] + np.cross(self.omega, lever_arm_W), GeoType.ENU, GeoType.ECEF)
        np.testing.assert_allclose(state.t_WR_ECEF, expected_t, atol=1e-6)
        np.testing.assert_allclose(state.v_WR_ECEF, expected_v, atol=1e-12)
        self.assertEqual(state.clock_frequency, 35.0)

    def test_unnormalized_quaternion(self):
        parameters = self.parameters()
        parameters[0][3:7] *= 3.0
        np.testing.assert_allclose(self.factor.evaluate(parameters),
                                   self.factor.evaluate(self.parameters()), atol=1e-9)

    def test_pose_jacobian_lift(self):
        _, jacobians, jacobians_minimal = self.evaluate_all()
        J_lift = PoseLocalParameterization.lift_jacobian(self.pose)
        J_plus = PoseLocalParameterization.plus_jacobian(self.pose)

        np.testing.assert_allclose(jacobians[0], jacobians_minimal[0] @ J_lift, atol=1e-12)
        np.testing.assert_allclose(jacobians[0] @ J_plus, jacobians_minimal[0], atol=1e-12)
        np.testing.assert_array_equal(jacobians_minimal[0][0, 0:3], np.zeros(3))
        for i in (1, 2, 3):
            np.testing.assert_array_equal(jacobians[i], jacobians_minimal[i])

    def test_numerical_pose_jacobian(self):
        _, _, jacobians_minimal = self.evaluate_all()
        t_fixed = self.factor.decode_state(self.parameters()).t_WR_ECEF

        h = 1e-5
        J_num = np.zeros((1, 6))
        for i in range(6):
            delta = np.zeros(6)
            delta[i] = h
            p_plus = self.parameters()
            p_minus = self.parameters()
            p_plus[0] = PoseLocalParameterization.plus(self.pose, delta)
            p_minus[0] = PoseLocalParameterization.plus(self.pose, -delta)
            J_num[0, i] = (self.velocity_residual(p_plus, t_fixed) -
                           self.velocity_residual(p_minus, t_fixed)) / (2 * h)
        np.testing.assert_allclose(jacobians_minimal[0], J_num, atol=1e-4)

    def test_numerical_jacobians(self):
        _, jacobians, _ = self.evaluate_all()
        t_fixed = self.factor.decode_state(self.parameters()).t_WR_ECEF

        h = 1e-5
        for block in (1, 2, 3):
            J_num = np.zeros((1, BODY[block]))
            for i in range(BODY[block]):
                p_plus = self.parameters()
                p_minus = self.parameters()
                p_plus[block][i] += h
                p_minus[block][i] -= h
                J_num[0, i] = (self.velocity_residual(p_plus, t_fixed) -
                               self.velocity_residual(p_minus, t_fixed)) / (2 * h)
            np.testing.assert_allclose(jacobians[block], J_num, atol=1e-4,
                                       err_msg=f"block {block}")

        # Biases do not enter the Doppler
        np.testing.assert_array_equal(jacobians[1][0, 3:9], np.zeros(6))

    def test_matches_direct_layout(self):
        """Zero lever arm and rotation rate reduce to the direct layout"""
        factor = self.make_factor(angular_velocity=np.zeros(3))
        parameters = self.parameters()
        parameters[2] = np.zeros(3)

        direct = DopplerError(self.measurement, self.index,
                              GnssErrorParameter(doppler_error_factor=0.5), DIRECT)
        position = self.coordinate.convert(self.pose[0:3], GeoType.ENU, GeoType.ECEF)
        velocity = self.coordinate.rotate(self.speed_and_bias[0:3], GeoType.ENU, GeoType.ECEF)
        direct_parameters = [position, velocity, self.clock.copy()]

        jacobians = jacobian_buffers(BODY)
        direct_jacobians = jacobian_buffers(DIRECT)
        residual = factor.evaluate(parameters, jacobians)
        direct_residual = direct.evaluate(direct_parameters, direct_jacobians)

        np.testing.assert_allclose(residual, direct_residual, atol=1e-9)
        R_ECEF_ENU = self.coordinate.rotation_matrix(GeoType.ENU, GeoType.ECEF)
        np.testing.assert_allclose(jacobians[1][:, 0:3], direct_jacobians[1] @ R_ECEF_ENU, atol=1e-12)
        np.testing.assert_array_equal(jacobians[0], np.zeros((1, 7)))
        np.testing.assert_array_equal(jacobians[2], np.zeros((1, 3)))
        np.testing.assert_array_equal(jacobians[3], direct_jacobians[2])

    def test_skip_pose_slot(self):
        jacobians = [None, np.zeros((1, 9)), None, np.zeros((1, 1))]
        jacobians_minimal = [np.full((1, 6), np.nan), None, None, None]
        self.factor.evaluate_with_minimal_jacobians(self.parameters(), jacobians, jacobians_minimal)
        self.assertTrue(np.all(np.isnan(jacobians_minimal[0])))
        self.assertEqual(jacobians[3][0, 0], -2.0)

    def test_missing_coordinate(self):
        factor = self.make_factor(coordinate=None)
        with self.assertLogs('pydoppler.factors.doppler_error', level='CRITICAL'):
            with self.assertRaisesRegex(PreconditionError, "Coordinate not set!"):
                factor.evaluate(self.parameters())

    def test_missing_origin(self):
        factor = self.make_factor(coordinate=GeoCoordinate())
        with self.assertRaisesRegex(PreconditionError, "Coordinate zero not set!"):
            factor.evaluate(self.parameters())

    def test_missing_angular_velocity(self):
        factor = self.make_factor(angular_velocity=None)
        with self.assertRaisesRegex(PreconditionError, "Angular velocity not set!"):
            factor.evaluate(self.parameters())

        factor.set_angular_velocity(self.omega)
        np.testing.assert_allclose(factor.evaluate(self.parameters()),
                                   self.factor.evaluate(self.parameters()))

    def test_angular_velocity_set_once(self):
        with self.assertLogs('pydoppler.factors.doppler_error', level='CRITICAL'):
            with self.assertRaises(PreconditionError):
                self.factor.set_angular_velocity(np.zeros(3))
        np.testing.assert_array_equal(self.factor.angular_velocity, self.omega)

        factor = self.make_factor(angular_velocity=None)
        with self.assertRaises(ValueError):
            factor.set_angular_velocity(np.zeros(2))

    def test_concurrent_evaluation(self):
        _, expected_jacobians, _ = self.evaluate_all()

        def run(_):
            jacobians = jacobian_buffers(BODY)
            self.factor.evaluate(self.parameters(), jacobians)
            return jacobians

        with ThreadPoolExecutor(max_workers=4) as executor:
            results = list(executor.map(run, range(32)))

        for jacobians in results:
            for J, J_expected in zip(jacobians, expected_jacobians):
                np.testing.assert_array_equal(J, J_expected)


if __name__ == '__main__':
    unittest.main()
