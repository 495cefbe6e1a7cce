"""
Tests for the managed database providers
"""
import hashlib
import json
import pytest
from unittest.mock import MagicMock

from conftest import FakeRunner, failed, http_response, ok, timed_out

from hostscale.core.config import ProviderSettings
from hostscale.core.exceptions import (
    ConfigurationError,
    ProviderNotSupported,
    ProvisioningTimedOut,
    ValidationError,
)
from hostscale.databases import (
    DATABASE_PROVIDER_CLASSES,
    AwsRdsProvider,
    AzureDatabaseProvider,
    CloudSqlProvider,
    DigitalOceanDatabaseProvider,
    OvhDatabaseProvider,
)
from hostscale.databases.base import (
    DatabaseEngine,
    InstanceStatus,
    ManagedDatabaseInstance,
    ManagedDatabaseRequest,
    default_identifier,
)
from hostscale.databases.gcp import database_version
from hostscale.databases.ovh import sign_request
from hostscale.utils.network import HTTPClient
from hostscale.utils.secrets import SecretBox


def make_request(provider="aws", **kwargs):
    values = {
        "provider": provider,
        "engine": "postgres",
        "name": "shop",
        "region": "eu-west-1",
        "instance_class": "db.t3.micro",
        "password": "s3cret!",
    }
    values.update(kwargs)
    return ManagedDatabaseRequest(**values)


def make_instance(provider="aws", **kwargs):
    values = {
        "instance_id": "db-shop",
        "provider": provider,
        "engine": "postgresql",
        "name": "shop",
        "region": "eu-west-1",
        "instance_class": "db.t3.micro",
    }
    values.update(kwargs)
    return ManagedDatabaseInstance(**values)


def flag_value(argv, flag):
    return argv[argv.index(flag) + 1]


class TestModels:
    """Test request and instance helpers"""

    def test_engine_aliases(self):
        assert DatabaseEngine.parse("Postgres") == DatabaseEngine.POSTGRESQL
        assert DatabaseEngine.parse("pg") == DatabaseEngine.POSTGRESQL
        with pytest.raises(ValueError):
            DatabaseEngine.parse("oracle")

    def test_default_identifier(self):
        assert default_identifier("My Shop_DB") == "db-my-shop-db"
        assert len(default_identifier("x" * 100)) == 63

    def test_explicit_identifier(self):
        assert make_request(instance_identifier="prod-db").identifier == "prod-db"

    def test_status_groups(self):
        assert InstanceStatus.PENDING.in_progress
        assert not InstanceStatus.TIMED_OUT.in_progress
        assert not InstanceStatus.TIMED_OUT.is_terminal
        assert InstanceStatus.DELETED.is_terminal

    def test_to_dict_omits_password(self):
        instance = make_instance(encrypted_password="token")

        assert "encrypted_password" not in instance.to_dict()
        assert "password" not in json.dumps(instance.to_dict())

    def test_connection_details_reveal(self):
        box = SecretBox(SecretBox.generate_key())
        instance = make_instance(host="db.example.com", encrypted_password=box.encrypt("s3cret!"))
        provider = AwsRdsProvider(runner=FakeRunner())

        hidden = provider.get_connection_details(instance, box)
        shown = provider.get_connection_details(instance, box, reveal=True)

        assert hidden.password is None
        assert hidden.port == 5432
        assert "password" not in hidden.to_dict()
        assert shown.to_dict(include_password=True)["password"] == "s3cret!"

    def test_catalogues_are_copies(self):
        provider = AwsRdsProvider(runner=FakeRunner())
        provider.get_available_regions().clear()

        assert "us-east-1" in provider.get_available_regions()

    @pytest.mark.parametrize("name", list(DATABASE_PROVIDER_CLASSES))
    def test_every_provider_publishes_catalogues(self, name):
        provider = DATABASE_PROVIDER_CLASSES[name](runner=FakeRunner())

        assert provider.name == name
        assert provider.get_available_instance_types()
        assert provider.get_available_regions()


class TestValidation:
    """Test request validation before any vendor call"""

    @pytest.mark.parametrize("changes,message", [
        ({"region": "mars-1"}, "Unknown region"),
        ({"instance_class": "db.huge"}, "Unknown instance type"),
        ({"storage_gb": 0}, "storage_gb"),
        ({"storage_gb": "20"}, "storage_gb"),
        ({"password": ""}, "password"),
        ({"username": ""}, "username"),
        ({"engine": "oracle"}, "Unknown engine"),
        ({"engine": "redis"}, "does not offer redis"),
        ({"name": ""}, "name"),
    ])
    def test_rejected_without_calls(self, runner, changes, message):
        provider = AwsRdsProvider(runner=runner)

        with pytest.raises(ValidationError) as excinfo:
            provider.provision(make_request(**changes))

        assert any(message in error for error in excinfo.value.context["validation_errors"])
        assert runner.calls == []

    def test_redis_needs_no_credentials(self, runner):
        provider = DigitalOceanDatabaseProvider(runner=runner)
        request = make_request("digitalocean", engine="redis", region="ams3", instance_class="db-s-1vcpu-1gb", username="", password="")

        provider.validate_request(request)

    def test_vendor_generated_password(self, runner):
        provider = OvhDatabaseProvider(runner=runner, client=MagicMock())

        provider.validate_request(make_request("ovh", region="GRA", instance_class="essential", password=""))


class TestAwsRdsProvider:
    """Test the aws CLI adapter"""

    def _provider(self, runner, **settings):
        settings.setdefault("credentials", {"access_key": "AKIA", "secret_key": "secret"})
        return AwsRdsProvider(settings=ProviderSettings(**settings), runner=runner, operation_timeout=120)

    def test_provision(self):
        """Test the create-db-instance invocation"""
        runner = FakeRunner(ok(json.dumps({"DBInstance": {"DBInstanceStatus": "creating", "DBInstanceArn": "arn:aws:rds:db-shop"}})))

        result = self._provider(runner).provision(make_request(name="shop-db"))

        assert result.success
        assert result.password == "s3cret!"
        assert result.instance.instance_id == "db-shop-db"
        assert result.instance.status == InstanceStatus.PROVISIONING
        assert result.instance.port == 5432
        assert result.instance.metadata["arn"] == "arn:aws:rds:db-shop"

        call = runner.calls[0]
        argv = call["argv"]
        assert argv[:3] == ["aws", "rds", "create-db-instance"]
        assert flag_value(argv, "--engine") == "postgres"
        assert flag_value(argv, "--db-name") == "shop_db"
        assert flag_value(argv, "--allocated-storage") == "20"
        assert flag_value(argv, "--region") == "eu-west-1"
        assert "--storage-encrypted" in argv
        assert "--no-publicly-accessible" in argv
        assert argv[-2:] == ["--output", "json"]
        assert call["env"] == {"AWS_ACCESS_KEY_ID": "AKIA", "AWS_SECRET_ACCESS_KEY": "secret"}
        assert call["timeout"] == 120

    def test_provision_failure_is_a_result(self):
        runner = FakeRunner(failed("An error occurred (DBInstanceAlreadyExists) when calling the CreateDBInstance operation"))

        result = self._provider(runner).provision(make_request())

        assert not result.success
        assert "DBInstanceAlreadyExists" in result.error

    def test_unexpected_json_shape_is_a_result(self):
        runner = FakeRunner(ok(json.dumps("Throttling: rate exceeded")))

        result = self._provider(runner).provision(make_request())

        assert not result.success
        assert "Throttling" in result.error

    def test_provision_timeout(self):
        runner = FakeRunner(timed_out())

        with pytest.raises(ProvisioningTimedOut) as excinfo:
            self._provider(runner).provision(make_request())

        assert excinfo.value.instance_id == "db-shop"
        assert len(runner.calls) == 1

    def test_describe(self):
        data = {"DBInstances": [{
            "DBInstanceStatus": "available",
            "Endpoint": {"Address": "db-shop.abc.eu-west-1.rds.amazonaws.com", "Port": 5432},
        }]}
        runner = FakeRunner(ok(json.dumps(data)))

        state = self._provider(runner).describe("db-shop", "postgresql", "eu-west-1")

        assert state.status == InstanceStatus.AVAILABLE
        assert state.host == "db-shop.abc.eu-west-1.rds.amazonaws.com"

    def test_missing_instance_is_deleted(self):
        runner = FakeRunner(failed("An error occurred (DBInstanceNotFound) when calling the DescribeDBInstances operation"))
        provider = self._provider(runner)

        assert provider.get_status("db-shop", "postgresql") == InstanceStatus.DELETED

    def test_database_exists(self):
        runner = FakeRunner(ok(json.dumps({"DBInstances": [{"DBInstanceStatus": "creating"}]})))

        assert self._provider(runner).database_exists("db-shop") is True

    def test_deprovision_keeps_final_snapshot(self, runner):
        self._provider(runner, default_region="us-east-2").deprovision("db-shop", "postgresql")

        argv = runner.argvs[0]
        assert flag_value(argv, "--final-db-snapshot-identifier") == "db-shop-final-snapshot"
        assert flag_value(argv, "--region") == "us-east-2"

    def test_get_metrics(self):
        runner = FakeRunner().on("CPUUtilization", ok(json.dumps({"Datapoints": [
            {"Timestamp": "2024-01-01T00:05:00Z", "Average": 12.5},
            {"Timestamp": "2024-01-01T00:00:00Z", "Average": 40.0},
        ]})))

        metrics = self._provider(runner).get_metrics(make_instance())

        assert metrics["cpu_utilization"] == 12.5
        assert metrics["database_connections"] is None
        assert len(runner.calls) == 5

    def test_scale_and_backup(self, runner):
        provider = self._provider(runner)
        instance = make_instance()

        provider.scale_instance(instance, "db.t3.large", storage_gb=50)
        snapshot = provider.create_backup(instance, "nightly")
        restored = provider.restore_backup(instance, "nightly")

        assert "--apply-immediately" in runner.argvs[0]
        assert flag_value(runner.argvs[0], "--allocated-storage") == "50"
        assert snapshot == "nightly"
        assert restored == "db-shop-restored"
        assert runner.argvs[2][2] == "restore-db-instance-from-db-snapshot"


class TestAzureDatabaseProvider:
    """Test the az CLI adapter"""

    def _provider(self, runner, resource_group="rg-hosting"):
        credentials = {"resource_group": resource_group} if resource_group else {}
        return AzureDatabaseProvider(settings=ProviderSettings(credentials=credentials), runner=runner)

    def _request(self, **kwargs):
        return make_request("azure", region="westeurope", instance_class="B_Gen5_1", **kwargs)

    def test_provision_maps_sku(self):
        runner = FakeRunner(ok(json.dumps({"host": "db-shop.postgres.database.azure.com", "id": "/subscriptions/x/db-shop"})))

        result = self._provider(runner).provision(self._request())

        argv = runner.argvs[0]
        assert argv[:4] == ["az", "postgres", "flexible-server", "create"]
        assert flag_value(argv, "--sku-name") == "Standard_B1ms"
        assert flag_value(argv, "--tier") == "Burstable"
        assert flag_value(argv, "--resource-group") == "rg-hosting"
        assert result.instance.host == "db-shop.postgres.database.azure.com"
        assert len(runner.calls) == 1

    def test_ssl_can_be_relaxed(self):
        runner = FakeRunner(ok("{}"))

        self._provider(runner).provision(self._request(engine="mysql", ssl_required=False))

        assert runner.argvs[1][:5] == ["az", "mysql", "flexible-server", "parameter", "set"]
        assert flag_value(runner.argvs[1], "--value") == "OFF"

    def test_mariadb_not_offered(self, runner):
        with pytest.raises(ValidationError):
            self._provider(runner).provision(self._request(engine="mariadb"))

    def test_resource_group_required(self, runner):
        with pytest.raises(ConfigurationError):
            self._provider(runner, resource_group=None).provision(self._request())
        assert runner.calls == []

    def test_describe_states(self):
        runner = FakeRunner(ok(json.dumps({"state": "Ready", "fullyQualifiedDomainName": "db-shop.mysql.database.azure.com"})))

        state = self._provider(runner).describe("db-shop", "mysql")

        assert state.status == InstanceStatus.AVAILABLE
        assert state.port == 3306

    def test_missing_server_is_deleted(self):
        runner = FakeRunner(failed("(ResourceNotFound) The Resource 'db-shop' under resource group 'rg-hosting' was not found."))

        assert self._provider(runner).get_status("db-shop", "mysql") == InstanceStatus.DELETED


class TestCloudSqlProvider:
    """Test the gcloud CLI adapter"""

    def _provider(self, runner):
        settings = ProviderSettings(credentials={"project_id": "hosting-prod"})
        return CloudSqlProvider(settings=settings, runner=runner)

    def test_database_version(self):
        assert database_version(DatabaseEngine.MYSQL) == "MYSQL_8_0"
        assert database_version(DatabaseEngine.MYSQL, "5.7") == "MYSQL_5_7"
        assert database_version(DatabaseEngine.POSTGRESQL, "POSTGRES_14") == "POSTGRES_14"

    def test_provision_creates_instance_database_and_user(self):
        created = {"state": "PENDING_CREATE", "ipAddresses": [{"ipAddress": "10.1.2.3"}], "connectionName": "hosting-prod:us-central1:db-shop"}
        runner = FakeRunner(ok(json.dumps(created)))

        result = self._provider(runner).provision(make_request("gcp", region="us-central1", instance_class="db-f1-micro"))

        commands = runner.commands()
        assert commands[0].startswith("gcloud sql instances create db-shop")
        assert "--ssl-mode=ENCRYPTED_ONLY" in runner.argvs[0]
        assert "--project=hosting-prod" in runner.argvs[0]
        assert commands[1].startswith("gcloud sql databases create shop --instance=db-shop")
        assert "--password=s3cret!" in runner.argvs[2]
        assert result.instance.host == "10.1.2.3"
        assert result.instance.metadata["connection_name"] == "hosting-prod:us-central1:db-shop"

    def test_user_creation_failure(self):
        runner = FakeRunner(ok("{}"), ok(), failed("ERROR: user already exists"))

        result = self._provider(runner).provision(make_request("gcp", region="us-central1", instance_class="db-f1-micro"))

        assert not result.success
        assert result.error == "ERROR: user already exists"

    def test_describe(self):
        runner = FakeRunner(ok(json.dumps({"state": "RUNNABLE", "ipAddresses": [{"ipAddress": "10.1.2.3"}]})))

        state = self._provider(runner).describe("db-shop", "mysql")

        assert state.status == InstanceStatus.AVAILABLE
        assert state.port == 3306

    def test_missing_instance_is_deleted(self):
        runner = FakeRunner(failed("ERROR: (gcloud.sql.instances.describe) HTTPError 404: The Cloud SQL instance does not exist."))

        assert self._provider(runner).get_status("db-shop", "mysql") == InstanceStatus.DELETED

    def test_restore_in_place(self, runner):
        instance = make_instance("gcp")

        assert self._provider(runner).restore_backup(instance, "1700000000") == "db-shop"
        assert "--restore-instance=db-shop" in runner.argvs[0]


class TestDigitalOceanDatabaseProvider:
    """Test the doctl adapter"""

    CLUSTER = [{
        "id": "9cc10173-e9ea-4176-9dbc-a4cee4c4ff30",
        "status": "creating",
        "connection": {
            "host": "db-shop-do-user-1.db.ondigitalocean.com",
            "port": 25060,
            "user": "doadmin",
            "password": "AVNS_generated",
            "database": "defaultdb",
        },
    }]

    def _provider(self, runner):
        return DigitalOceanDatabaseProvider(settings=ProviderSettings(credentials={"api_token": "dop_v1_x"}), runner=runner)

    def test_provision_returns_vendor_password(self):
        runner = FakeRunner(ok(json.dumps(self.CLUSTER)))
        request = make_request("digitalocean", region="ams3", instance_class="db-s-1vcpu-1gb", password="")

        result = self._provider(runner).provision(request)

        assert result.password == "AVNS_generated"
        assert result.instance.instance_id == "9cc10173-e9ea-4176-9dbc-a4cee4c4ff30"
        assert result.instance.username == "doadmin"
        assert result.instance.metadata["cluster_name"] == "db-shop"
        assert flag_value(runner.argvs[0], "--engine") == "pg"
        assert runner.calls[0]["env"] == {"DIGITALOCEAN_ACCESS_TOKEN": "dop_v1_x"}

    def test_backup_not_supported(self, runner):
        with pytest.raises(ProviderNotSupported):
            self._provider(runner).create_backup(make_instance("digitalocean"), "nightly")
        assert runner.calls == []

    def test_restore_forks_new_cluster(self):
        runner = FakeRunner(ok(json.dumps([{"id": "new-cluster-id"}])))
        instance = make_instance("digitalocean", instance_id="9cc1", metadata={"cluster_name": "db-shop"})

        restored = self._provider(runner).restore_backup(instance, "2024-01-01T03:00:00Z")

        assert restored == "new-cluster-id"
        argv = runner.argvs[0]
        assert argv[2:4] == ["fork", "db-shop-restored"]
        assert flag_value(argv, "--restore-from-cluster-id") == "9cc1"

    def test_resize_storage_in_mib(self, runner):
        self._provider(runner).scale_instance(make_instance("digitalocean"), "db-s-2vcpu-4gb", storage_gb=30)

        assert flag_value(runner.argvs[0], "--storage-size-mib") == "30720"

    def test_missing_cluster_is_deleted(self):
        runner = FakeRunner(failed("Error: GET https://api.digitalocean.com/v2/databases/x: 404 cluster not found"))

        assert self._provider(runner).get_status("x", "mysql") == InstanceStatus.DELETED


class TestOvhDatabaseProvider:
    """Test the signed OVHcloud API adapter"""

    CREDENTIALS = {
        "application_key": "app-key",
        "application_secret": "app-secret",
        "consumer_key": "consumer",
        "service_name": "proj",
    }

    def _provider(self, response, credentials=None):
        session = MagicMock()
        session.request.return_value = response
        client = HTTPClient("https://eu.api.ovh.com/1.0", provider="ovh", session=session)
        settings = ProviderSettings(credentials=credentials if credentials is not None else self.CREDENTIALS)
        return OvhDatabaseProvider(settings=settings, client=client, clock=lambda: 1700000000), session

    def _request(self, **kwargs):
        return make_request("ovh", engine="mysql", region="GRA", instance_class="business", password="", **kwargs)

    def test_sign_request(self):
        expected = hashlib.sha1(b"s+c+GET+https://x/1.0/me++42").hexdigest()

        assert sign_request("s", "c", "get", "https://x/1.0/me", "", 42) == "$1$" + expected

    def test_provision_signs_request(self):
        provider, session = self._provider(http_response(200, json_data={"id": "c-123", "status": "CREATING"}))

        result = provider.provision(self._request())

        args, kwargs = session.request.call_args
        url = "https://eu.api.ovh.com/1.0/cloud/project/proj/database/mysql"
        assert args == ("POST", url)
        body = json.loads(kwargs["data"])
        assert body["plan"] == "business"
        assert body["nodesPattern"]["number"] == 3
        assert body["nodesPattern"]["region"] == "GRA"

        headers = kwargs["headers"]
        assert headers["X-Ovh-Application"] == "app-key"
        assert headers["X-Ovh-Timestamp"] == "1700000000"
        assert headers["X-Ovh-Signature"] == sign_request("app-secret", "consumer", "POST", url, kwargs["data"], 1700000000)

        assert result.success
        assert result.password is None
        assert result.instance.username == "avnadmin"
        assert result.instance.host == "c-123.database.cloud.ovh.net"

    def test_api_error_is_a_result(self):
        provider, _ = self._provider(http_response(400, json_data={"message": "Invalid plan"}))

        result = provider.provision(self._request())

        assert not result.success
        assert result.error == "Invalid plan"

    def test_html_body_is_a_result(self):
        """Test a maintenance page served with status 200 fails the create cleanly"""
        response = http_response(200, text="<html>Service under maintenance</html>")
        response.json.side_effect = ValueError("Expecting value: line 1 column 1 (char 0)")
        provider, _ = self._provider(response)

        result = provider.provision(self._request())

        assert not result.success
        assert "maintenance" in result.error

    def test_missing_cluster_is_deleted(self):
        provider, _ = self._provider(http_response(404, json_data={"message": "not found"}))

        assert provider.get_status("c-123", "mysql") == InstanceStatus.DELETED

    def test_describe_endpoint(self):
        cluster = {"status": "READY", "endpoints": [{"component": "mysql", "domain": "c-123.database.cloud.ovh.net", "port": 20184}]}
        provider, _ = self._provider(http_response(200, json_data=cluster))

        state = provider.describe("c-123", "mysql")

        assert state.status == InstanceStatus.AVAILABLE
        assert state.port == 20184

    def test_service_name_required(self):
        provider, session = self._provider(http_response(200, json_data={}), credentials={})

        with pytest.raises(ConfigurationError):
            provider.provision(self._request())
        session.request.assert_not_called()
