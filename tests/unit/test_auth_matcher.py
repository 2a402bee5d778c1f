"""Tests for the authentication and login throttling matchers."""

from __future__ import annotations

from laraguard.analysis.matchers.auth import (
    grouped_lines,
    has_auth_middleware,
    is_auth_middleware,
    is_throttle_middleware,
    login_methods,
    login_routes_without_throttle,
    routes_without_auth,
    unauthenticated_route_table,
    unguarded_controller_methods,
    unsafe_auth_user,
    unthrottled_login_route_table,
)
from laraguard.analysis.models import Severity
from laraguard.analysis.php import parse_php
from laraguard.project.routes import Route

WEB_ROUTES = """<?php
use Illuminate\\Support\\Facades\\Route;

Route::get('/posts', [PostController::class, 'index']);
Route::post('/posts', [PostController::class, 'store']);
Route::delete('/posts/{post}', [PostController::class, 'destroy'])->middleware('auth');
Route::post('/login', [LoginController::class, 'login']);

Route::middleware(['auth', 'verified'])->group(function () {
    Route::put('/profile', [ProfileController::class, 'update']);
    Route::resource('photos', PhotoController::class);
});

Route::patch('/settings/{id}', [SettingsController::class, 'update']);
"""


def _lines(matches):
    return [(m.message, m.line) for m in matches]


class TestRoutesWithoutAuth:
    def test_routes_and_auth_groups(self):
        assert _lines(routes_without_auth(WEB_ROUTES)) == [
            ("POST route without authentication middleware", 5),
            ("PATCH route without authentication middleware", 14),
        ]

    def test_route_group_options(self):
        content = """<?php
Route::group(['prefix' => 'admin'], function () {
    Route::post('/users', [UserController::class, 'store']);
});
Route::group(['middleware' => 'auth'], function () {
    Route::delete('/users/{id}', [UserController::class, 'destroy']);
});
"""
        matches = routes_without_auth(content)
        assert _lines(matches) == [
            ("Route group without authentication middleware", 2),
            ("POST route without authentication middleware", 3),
        ]
        assert matches[0].severity == Severity.MEDIUM
        assert matches[1].severity == Severity.HIGH

    def test_group_loading_a_file_does_not_cover_later_routes(self):
        content = """<?php
Route::middleware('auth')->group(base_path('routes/admin.php'));
Route::post('/comments', [CommentController::class, 'store']);
"""
        assert _lines(routes_without_auth(content)) == [
            ("POST route without authentication middleware", 3),
        ]

    def test_multiline_route_middleware(self):
        content = """<?php
Route::post('/orders', [OrderController::class, 'store'])
    ->name('orders.store')
    ->middleware(['auth:sanctum']);
"""
        assert routes_without_auth(content) == []


def test_grouped_lines_nested_closures():
    lines = [
        "Route::middleware('auth')",
        "    ->group(function () {",
        "        Route::prefix('a')->group(function () {",
        "            Route::post('/x', fn () => 1);",
        "        });",
        "    });",
        "Route::post('/y', fn () => 2);",
    ]
    assert grouped_lines(lines, has_auth_middleware) == {2, 3, 4, 5}


class TestLoginRoutes:
    def test_unthrottled_login_route(self):
        content = """<?php
Route::post('/login', [AuthController::class, 'login']);
Route::post('/admin/signin', [AdminAuth::class, 'store'])->middleware('throttle:5,1');
Route::middleware('throttle:login')->group(function () {
    Route::post('/auth/token', [TokenController::class, 'issue']);
});
Route::get('/login', [AuthController::class, 'show']);
"""
        matches = login_routes_without_throttle(content)
        assert _lines(matches) == [('Login route "/login" lacks rate limiting protection', 2)]
        assert matches[0].metadata["uri"] == "/login"


class TestRouteTable:
    def test_unauthenticated_routes(self):
        routes = [
            Route("POST", "posts", ("web",)),
            Route("POST", "posts/{id}", ("web", "App\\Http\\Middleware\\Authenticate")),
            Route("DELETE", "tokens", ("api", "auth:sanctum")),
            Route("GET", "dashboard", ()),
            Route("POST", "login", ("web",)),
        ]
        (match,) = unauthenticated_route_table(routes)
        assert match.message == "POST route /posts has no authentication middleware"
        assert match.metadata["middleware"] == ["web"]

    def test_unthrottled_login_routes(self):
        routes = [
            Route("POST", "login", ("web",)),
            Route("POST", "api/login", ("api", "throttle:api")),
            Route("POST", "auth/token", ("Illuminate\\Routing\\Middleware\\ThrottleRequests:5,1",)),
            Route("GET", "login", ()),
        ]
        (match,) = unthrottled_login_route_table(routes)
        assert match.message == 'Login route "login" lacks rate limiting protection'

    def test_middleware_names(self):
        assert is_auth_middleware("auth")
        assert is_auth_middleware("Illuminate\\Auth\\Middleware\\Authenticate:sanctum")
        assert not is_auth_middleware("web")
        assert is_throttle_middleware("throttle:6,1")
        assert is_throttle_middleware("Illuminate\\Routing\\Middleware\\ThrottleRequestsWithRedis")
        assert not is_throttle_middleware("auth")


CONTROLLER = """<?php
namespace App\\Http\\Controllers;

class PostController extends Controller
{
    public function index() { return view('posts'); }

    public function store(Request $request)
    {
        return Post::create($request->all());
    }

    public function update(Request $request, Post $post)
    {
        $this->authorize('update', $post);
        $post->update($request->all());
    }

    public function destroy(Post $post)
    {
        if (Gate::denies('delete', $post)) {
            abort(403);
        }
        $post->delete();
    }

    protected function edit() {}
}
"""


class TestControllers:
    def test_unguarded_sensitive_methods(self):
        matches = unguarded_controller_methods(parse_php(CONTROLLER))
        assert _lines(matches) == [
            ("Sensitive method PostController::store() without authentication check", 8),
        ]
        assert matches[0].metadata == {"class": "PostController", "method": "store"}

    def test_constructor_middleware(self):
        content = """<?php
class AdminController extends Controller
{
    public function __construct()
    {
        $this->middleware('auth:admin');
    }

    public function destroy($id) {}
}
"""
        assert unguarded_controller_methods(parse_php(content)) == []

    def test_static_middleware_definition(self):
        content = """<?php
class TeamController extends Controller implements HasMiddleware
{
    public static function middleware(): array
    {
        return ['auth'];
    }

    public function store() {}
}
"""
        assert unguarded_controller_methods(parse_php(content)) == []

    def test_login_methods(self):
        content = """<?php
class AuthController extends Controller
{
    public function showLoginForm() {}

    public function login(Request $request)
    {
        return Auth::attempt($request->only('email', 'password'));
    }
}
"""
        assert _lines(login_methods(parse_php(content))) == [
            ("Authentication method AuthController::login() lacks rate limiting", 6),
        ]


def test_unsafe_auth_user():
    content = """<?php
$name = Auth::user()->name;
if (Auth::check()) {
    $email = Auth::user()->email;
}
$id = auth()->user()?->id;
$x = auth()->user()->id;
"""
    assert _lines(unsafe_auth_user(content)) == [
        ("Unsafe Auth::user() usage without null check", 2),
        ("Unsafe auth()->user() usage without null check", 7),
    ]
