import csv
import io

import pytest
from sqlmodel import select

from georeport.models.audit import Actividad
from georeport.models.enums import ActivityType
from georeport.routers import session as session_router


@pytest.fixture(autouse=True)
def fresh_login_limiter():
    session_router.login_limiter._entries.clear()
    yield
    session_router.login_limiter._entries.clear()


class TestAuditoria:
    def test_has_users(self, client, engine):
        assert client.get("/auditoria/has-users").json() == {"has_users": False}

    def test_has_users_after_seed(self, client, admin):
        assert client.get("/auditoria/has-users").json() == {"has_users": True}

    @pytest.mark.parametrize("path", [
        "/auditoria/actividades",
        "/auditoria/actividades/export",
        "/auditoria/cambios",
        "/auditoria/cambios/export",
    ])
    def test_member_cannot_read_audit_trail(self, client, member_headers, path):
        assert client.get(path, headers=member_headers).status_code == 403

    def test_member_can_register_own_activity(self, client, member_headers):
        response = client.post(
            "/auditoria/actividades",
            json={"activity_type": "READ", "descripcion": "Abrió el mapa"},
            headers=member_headers,
        )

        assert response.status_code == 200

    def test_register_and_list_activity(self, client, admin_headers):
        created = client.post(
            "/auditoria/actividades",
            json={"activity_type": "SEARCH", "descripcion": "Buscó reportes", "tabla_afectada": "reportes"},
            headers=admin_headers,
        )
        assert created.status_code == 200

        body = client.get("/auditoria/actividades", headers=admin_headers).json()
        [row] = body["actividades"]
        assert row["activity_type"] == "SEARCH"
        assert row["user_email"] == "admin@example.com"

    def test_changes_are_listed_after_crud(self, client, admin_headers):
        client.post("/categories/", json={"nombre": "Ruido"}, headers=admin_headers)

        body = client.get(
            "/auditoria/cambios",
            params={"tabla_nombre": "categories", "operation_type": "INSERT"},
            headers=admin_headers,
        ).json()

        assert len(body["cambios"]) == 1
        assert body["cambios"][0]["valores_nuevos"]["nombre"] == "Ruido"

    def test_export_activities(self, client, session, admin_headers):
        client.post(
            "/auditoria/actividades",
            json={"activity_type": "READ", "descripcion": 'Vio "todo", completo'},
            headers=admin_headers,
        )

        response = client.get("/auditoria/actividades/export", headers=admin_headers)

        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == ["Tipo", "Descripción", "Usuario", "Tabla Afectada", "ID Registro", "Fecha"]
        assert rows[1][:3] == ["READ", 'Vio "todo", completo', "admin@example.com"]

        exports = session.exec(select(Actividad).where(Actividad.activity_type == ActivityType.EXPORT)).all()
        assert len(exports) == 1

    def test_export_changes(self, client, admin_headers):
        created = client.post("/categories/", json={"nombre": "Ruido"}, headers=admin_headers).json()
        client.patch(f"/categories/{created['id']}", json={"color": "#000000", "icono": "Bell"}, headers=admin_headers)

        response = client.get(
            "/auditoria/cambios/export",
            params={"operation_type": "UPDATE"},
            headers=admin_headers,
        )

        rows = list(csv.reader(io.StringIO(response.text)))
        assert rows[0] == ["Operación", "Tabla", "ID Registro", "Descripción", "Campos Modificados", "Usuario", "Fecha"]
        assert rows[1][4] == "color; icono"


class TestSession:
    def test_login_and_logout_are_logged(self, client, session, admin_headers):
        client.post("/session/login", headers=admin_headers)
        client.post("/session/logout", headers=admin_headers)

        types = {a.activity_type for a in session.exec(select(Actividad)).all()}
        assert types == {ActivityType.LOGIN, ActivityType.LOGOUT}

    def test_failed_logins_are_rate_limited(self, client, session):
        payload = {"email": "attacker@example.com"}

        statuses = [client.post("/session/login-failed", json=payload).status_code for _ in range(6)]

        assert statuses == [200] * 5 + [429]
        events = [a.metadatos["event_type"] for a in session.exec(select(Actividad)).all()]
        assert events.count("LOGIN_FAILED") == 5
        assert events.count("LOGIN_RATE_LIMIT_EXCEEDED") == 1


def test_dashboard_stats(client, admin, admin_headers, member, make_reporte):
    make_reporte(admin, nombre="a")
    make_reporte(admin, nombre="b", activo=None)
    make_reporte(admin, nombre="c", assigned_to=member.id)

    body = client.get("/dashboard/stats", headers=admin_headers).json()

    assert body["total_reportes"] == 3
    assert body["reportes_current_month"] == 3
    assert body["reportes_by_status"] == {"pendiente": 1, "resuelto": 1, "en_proceso": 1}
    assert body["reportes_by_priority"] == {"medio": 3}
    assert body["active_users"] == 2
    assert body["active_categories"] == 3
