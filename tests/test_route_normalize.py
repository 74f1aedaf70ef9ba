from apidecl.registry.normalize import normalize_route, route_params, to_reference_route, to_router_path


def test_normalize_route_basic():
    assert normalize_route("widgets") == "/widgets"
    assert normalize_route("/widgets//:id/") == "/widgets/:id"
    assert normalize_route("/") == "/"


def test_route_conversions():
    route = "/task/:taskId/runs/:runId"
    assert to_router_path(route) == "/task/{taskId}/runs/{runId}"
    assert to_reference_route(route) == "/task/<taskId>/runs/<runId>"
    assert route_params(route) == ["taskId", "runId"]
