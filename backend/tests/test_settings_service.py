import unittest

from theaterpos import create_app
from theaterpos.errors import Forbidden, NotFound, ValidationError
from theaterpos.extensions import db
from theaterpos.models import Setting
from theaterpos.services import settings_service, theater_service
from theaterpos.services.settings_service import DEFAULT_SETTINGS


class SettingsServiceTests(unittest.TestCase):
    @classmethod
    def setUpClass(cls):
        cls.app = create_app({
            "TESTING": True,
            "SQLALCHEMY_DATABASE_URI": "sqlite:///:memory:",
            "OTP_REAPER_INTERVAL_SECONDS": 0,
        })
        cls.ctx = cls.app.app_context()
        cls.ctx.push()
        db.create_all()

    @classmethod
    def tearDownClass(cls):
        db.session.remove()
        db.drop_all()
        cls.ctx.pop()

    def setUp(self):
        for table in reversed(db.metadata.sorted_tables):
            db.session.execute(table.delete())
        db.session.commit()

        self.theater = theater_service.provision_theater("Settings Cinema", "SET")
        self.other = theater_service.provision_theater("Other Cinema", "OTH")

    def test_defaults_seeded_once(self):
        count = db.session.query(Setting).filter_by(theater_id=self.theater.id).count()
        self.assertEqual(count, len(DEFAULT_SETTINGS))
        self.assertEqual(settings_service.initialize_defaults(self.theater.id), 0)

    def test_tagged_value_round_trip(self):
        setting = settings_service.set_setting(self.theater.id, "general", "taxRate", 12.5)
        self.assertEqual(settings_service.decode_setting(setting), {"type": "number", "value": 12.5})

    def test_type_mismatch_rejected(self):
        with self.assertRaises(ValidationError):
            settings_service.set_setting(self.theater.id, "general", "taxRate", "twelve")
        with self.assertRaises(ValidationError):
            settings_service.set_setting(self.theater.id, "payment", "acceptCash", 1)

    def test_new_setting_infers_type(self):
        setting = settings_service.set_setting(self.theater.id, "branding", "tagline", "Movies & more", is_public=True)
        self.assertEqual(setting.value_type, "string")
        self.assertTrue(setting.is_public)

    def test_explicit_type_for_structured_values(self):
        setting = settings_service.set_setting(
            self.theater.id, "notification", "channels", ["sms", "email"], value_type="array",
        )
        self.assertEqual(setting.value, ["sms", "email"])
        with self.assertRaises(ValidationError):
            settings_service.set_setting(self.theater.id, "notification", "quietHours", "22-06", value_type="object")

    def test_system_settings_read_only(self):
        with self.assertRaises(Forbidden):
            settings_service.set_setting(self.theater.id, "system", "maintenanceMode", True)
        with self.assertRaises(Forbidden):
            settings_service.set_setting(self.theater.id, "system", "newFlag", True)
        self.assertFalse(settings_service.get_setting(self.theater.id, "system", "maintenanceMode").value)

    def test_internal_seeder_may_write_system(self):
        setting = settings_service.set_setting(
            self.theater.id, "system", "maintenanceMode", True, system_write=True,
        )
        self.assertTrue(setting.value)
        self.assertTrue(setting.is_system)

    def test_unknown_category(self):
        with self.assertRaises(ValidationError):
            settings_service.set_setting(self.theater.id, "marketing", "banner", "x")

    def test_public_listing(self):
        public = settings_service.list_settings(self.theater.id, public_only=True)
        self.assertTrue(public)
        self.assertTrue(all(s.is_public for s in public))
        self.assertNotIn("razorpayKeyId", {s.key for s in public})

    def test_settings_scoped_to_theater(self):
        settings_service.set_setting(self.theater.id, "general", "companyName", "Settings Cinema Canteen")
        other = settings_service.get_setting(self.other.id, "general", "companyName")
        self.assertEqual(other.value, "Theater Canteen")

    def test_grouped_view(self):
        grouped = settings_service.grouped(settings_service.list_settings(self.theater.id, category="payment"))
        self.assertEqual(list(grouped), ["payment"])
        self.assertEqual(grouped["payment"]["acceptUPI"], {"type": "boolean", "value": True})

    def test_missing_setting(self):
        with self.assertRaises(NotFound):
            settings_service.get_setting(self.theater.id, "general", "doesNotExist")


if __name__ == "__main__":
    unittest.main()
