import pytest

from n2wash.tenancy import CONTEXT_ADMIN, CONTEXT_PLATFORM, CONTEXT_PUBLIC, CONTEXT_SUPER_ADMIN, resolve_host


@pytest.mark.parametrize(
    "host, kind, slug",
    [
        ("myjnia.n2wash.com", CONTEXT_PUBLIC, "myjnia"),
        ("MYJNIA.N2WASH.COM:443", CONTEXT_PUBLIC, "myjnia"),
        ("myjnia.admin.n2wash.com", CONTEXT_ADMIN, "myjnia"),
        ("super.admin.n2wash.com", CONTEXT_SUPER_ADMIN, None),
        ("n2wash.com", CONTEXT_PLATFORM, None),
        ("www.n2wash.com", CONTEXT_PLATFORM, None),
        ("admin.n2wash.com", CONTEXT_PLATFORM, None),
        ("a.b.c.n2wash.com", CONTEXT_PLATFORM, None),
        ("localhost:8000", CONTEXT_PLATFORM, None),
        ("demo.localhost", CONTEXT_PLATFORM, None),
        ("127.0.0.1:8000", CONTEXT_PLATFORM, None),
        ("[::1]:8000", CONTEXT_PLATFORM, None),
        ("myjnia.example.com", CONTEXT_PLATFORM, None),
        ("", CONTEXT_PLATFORM, None),
        (None, CONTEXT_PLATFORM, None),
    ],
)
def test_resolve_host(host, kind, slug):
    context = resolve_host(host, "n2wash.com")
    assert context.kind == kind
    assert context.instance_slug == slug


def test_custom_base_domain():
    assert resolve_host("studio.wash.test", "wash.test").instance_slug == "studio"
    assert resolve_host("studio.n2wash.com", "wash.test").kind == CONTEXT_PLATFORM


def test_public_instance_from_subdomain(client, instance):
    response = client.get("/public/instance", headers={"host": "studio.n2wash.com"})
    assert response.status_code == 200
    assert response.json()["slug"] == "studio"


def test_public_instance_from_query(client, instance):
    response = client.get("/public/instance", params={"slug": "studio"})
    assert response.status_code == 200


def test_unknown_or_inactive_instance_is_not_found(client, db, instance):
    assert client.get("/public/instance", params={"slug": "missing"}).status_code == 404
    assert client.get("/public/instance").status_code == 404

    instance.active = False
    db.commit()
    assert client.get("/public/instance", params={"slug": "studio"}).status_code == 404
