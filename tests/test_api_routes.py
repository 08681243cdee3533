"""
HTTP endpoint tests through the Flask test client
"""
from datetime import timedelta

from backend.src.extensions import db
from backend.src.models.task import Task


class TestAuthEndpoints:

    def test_register_and_me(self, client, org):
        response = client.post('/api/auth/register', json={
            'name': 'Jane Doe',
            'email': 'jane@example.com',
            'password': 'password123',
        })
        assert response.status_code == 201
        body = response.get_json()
        assert body['user']['role'] == 'TEAM_MEMBER'

        me = client.get('/api/auth/me', headers={'Authorization': f"Bearer {body['token']}"})
        assert me.status_code == 200
        assert me.get_json()['user']['email'] == 'jane@example.com'

    def test_login_failure_shape(self, client, org):
        response = client.post('/api/auth/login', json={'email': 'member@example.com', 'password': 'nope'})
        assert response.status_code == 401
        assert response.get_json() == {'error': 'AuthenticationError', 'message': 'Invalid email or password'}

    def test_login_success(self, client, org):
        response = client.post('/api/auth/login', json={'email': 'member@example.com', 'password': 'password123'})
        assert response.status_code == 200
        assert response.get_json()['token']

    def test_malformed_login_is_a_validation_error(self, client, org):
        response = client.post('/api/auth/login', json={'email': 123, 'password': 'x'})
        assert response.status_code == 400
        assert response.get_json()['error'] == 'ValidationError'

    def test_profile_and_password(self, client, org, auth_headers):
        headers = auth_headers(org['member'])
        profile = client.put('/api/auth/profile', json={'name': 'Tom Renamed'}, headers=headers)
        assert profile.status_code == 200
        assert profile.get_json()['user']['name'] == 'Tom Renamed'

        wrong = client.put('/api/auth/password', headers=headers,
                           json={'current_password': 'nope', 'new_password': 'another-secret'})
        assert wrong.status_code == 401
        changed = client.put('/api/auth/password', headers=headers,
                             json={'current_password': 'password123', 'new_password': 'another-secret'})
        assert changed.status_code == 200

    def test_missing_token(self, client):
        response = client.get('/api/tasks')
        assert response.status_code == 401
        assert response.get_json()['error'] == 'AuthorizationRequired'

    def test_change_role_requires_admin(self, client, org, auth_headers):
        url = f"/api/users/{org['member'].id}/role"
        assert client.put(url, json={'role': 'MANAGER'}, headers=auth_headers(org['manager'])).status_code == 403
        response = client.put(url, json={'role': 'MANAGER'}, headers=auth_headers(org['admin']))
        assert response.status_code == 200
        assert response.get_json()['user']['role'] == 'MANAGER'


class TestTaskEndpoints:

    def test_create_get_list(self, client, org, auth_headers):
        response = client.post('/api/tasks', headers=auth_headers(org['manager']), json={
            'title': 'Fix login bug',
            'category': 'Urgent',
            'tags': ['critical'],
            'assigned_to': org['member'].id,
        })
        assert response.status_code == 201
        task = response.get_json()['task']
        assert task['ai_priority_score'] == 80
        assert task['priority'] == 'High'

        fetched = client.get(f"/api/tasks/{task['id']}", headers=auth_headers(org['member']))
        assert fetched.status_code == 200
        assert fetched.get_json()['task']['title'] == 'Fix login bug'

        listing = client.get('/api/tasks?sort_by=priority', headers=auth_headers(org['member']))
        assert listing.status_code == 200
        assert listing.get_json()['total'] == 1

    def test_member_cannot_create(self, client, org, auth_headers):
        response = client.post('/api/tasks', headers=auth_headers(org['member']), json={
            'title': 'Sneaky', 'assigned_to': org['member'].id,
        })
        assert response.status_code == 403
        assert response.get_json()['error'] == 'Forbidden'

    def test_outsider_gets_403_and_missing_gets_404(self, client, org, auth_headers, make_task):
        task = make_task()
        assert client.get(f'/api/tasks/{task.id}', headers=auth_headers(org['outsider'])).status_code == 403
        assert client.get('/api/tasks/98765', headers=auth_headers(org['manager'])).status_code == 404

    def test_status_endpoint(self, client, org, auth_headers, make_task, now):
        task = make_task(deadline=now - timedelta(days=1))
        headers = auth_headers(org['member'])

        response = client.put(f'/api/tasks/{task.id}/status', json={'status': 'In-Progress'}, headers=headers)
        assert response.status_code == 403

        response = client.put(f'/api/tasks/{task.id}/status', json={'status': 'Overdue'}, headers=headers)
        assert response.status_code == 400

        response = client.put(f'/api/tasks/{task.id}/status', json={'status': 'Done'}, headers=headers)
        assert response.status_code == 200
        body = response.get_json()['task']
        assert body['status'] == 'Done'
        assert body['completed_before_deadline'] is False

    def test_review_flow(self, client, org, auth_headers, make_task):
        task = make_task()
        member, manager = auth_headers(org['member']), auth_headers(org['manager'])

        submit = client.post(f'/api/tasks/{task.id}/submit', json={'code': 'print(1)'}, headers=member)
        assert submit.status_code == 200
        assert submit.get_json()['task']['submission_status'] == 'Pending Review'

        reject = client.post(f'/api/tasks/{task.id}/reject', json={}, headers=manager)
        assert reject.status_code == 400

        accept = client.post(f'/api/tasks/{task.id}/accept', headers=manager)
        assert accept.status_code == 200
        assert accept.get_json()['task']['status'] == 'Done'

        reopen = client.put(f'/api/tasks/{task.id}/status', json={'status': 'To-Do'}, headers=manager)
        assert reopen.status_code == 409
        assert reopen.get_json()['error'] == 'ConflictError'

    def test_update_and_delete(self, client, org, auth_headers, make_task):
        task = make_task()
        task_id = task.id
        manager = auth_headers(org['manager'])

        response = client.put(f'/api/tasks/{task.id}', json={'category': 'Work'}, headers=manager)
        assert response.status_code == 200
        assert response.get_json()['task']['category'] == 'Work'

        response = client.put(f'/api/tasks/{task.id}', json={'status': 'Done'}, headers=manager)
        assert response.status_code == 400

        assert client.delete(f'/api/tasks/{task.id}', headers=auth_headers(org['member'])).status_code == 403
        assert client.delete(f"/api/tasks/{task_id}", headers=manager).status_code == 200
        assert db.session.get(Task, task_id) is None

    def test_comments_preview_and_aggregates(self, client, org, auth_headers, make_task):
        task = make_task(ai_priority_score=88)
        member = auth_headers(org['member'])

        comment = client.post(f'/api/tasks/{task.id}/comments', json={'text': 'On it'}, headers=member)
        assert comment.status_code == 201
        assert comment.get_json()['task']['comments'][0]['text'] == 'On it'

        preview = client.post('/api/tasks/priority/preview', json={'category': 'Urgent'}, headers=member)
        assert preview.get_json() == {'ai_priority_score': 70, 'priority': 'Medium'}

        recommendations = client.get('/api/tasks/recommendations', headers=member).get_json()
        assert recommendations['recommendations'][0]['id'] == task.id

        overview = client.get('/api/tasks/overview', headers=member).get_json()
        assert overview['total_tasks'] == 1

    def test_bulk_update(self, client, org, auth_headers, make_task):
        first, second = make_task('First'), make_task('Second')
        response = client.put('/api/tasks/bulk/update-order', headers=auth_headers(org['member']), json={
            'tasks': [{'id': first.id, 'status': 'In-Progress'}, {'id': second.id, 'status': 'Done'}],
        })
        assert response.status_code == 200
        assert [t['status'] for t in response.get_json()['tasks']] == ['In-Progress', 'Done']

    def test_recalculate_priority_endpoint(self, client, org, auth_headers, make_task):
        task = make_task(category='Urgent', ai_priority_score=10, priority='Low')
        response = client.put(f'/api/tasks/{task.id}/priority', headers=auth_headers(org['manager']))
        assert response.status_code == 200
        assert response.get_json()['task']['ai_priority_score'] == 70


class TestDepartmentEndpoints:

    def test_department_lifecycle(self, client, org, auth_headers):
        admin = auth_headers(org['admin'])

        created = client.post('/api/departments', json={'name': 'Support', 'max_members': 1}, headers=admin)
        assert created.status_code == 201
        department_id = created.get_json()['department']['id']

        added = client.post(f'/api/departments/{department_id}/members',
                            json={'user_id': org['member2'].id}, headers=admin)
        assert added.status_code == 200

        full = client.post(f'/api/departments/{department_id}/members',
                           json={'user_id': org['outsider'].id}, headers=admin)
        assert full.status_code == 400
        assert 'maximum capacity' in full.get_json()['message']

        head = client.put(f'/api/departments/{department_id}/head',
                          json={'user_id': org['member2'].id}, headers=admin)
        assert head.status_code == 200
        assert head.get_json()['department']['head_id'] == org['member2'].id

        assert client.delete(f'/api/departments/{department_id}', headers=admin).status_code == 200

    def test_list_and_update(self, client, org, auth_headers):
        listing = client.get('/api/departments', headers=auth_headers(org['member']))
        assert listing.status_code == 200
        assert listing.get_json()['count'] == 2

        response = client.put(f"/api/departments/{org['design'].id}", json={'max_members': 10},
                              headers=auth_headers(org['admin']))
        assert response.status_code == 200
        assert response.get_json()['department']['max_members'] == 10

    def test_manager_cannot_manage_departments(self, client, org, auth_headers):
        response = client.post('/api/departments', json={'name': 'Rogue'}, headers=auth_headers(org['manager']))
        assert response.status_code == 403


class TestFeedAndAnalyticsEndpoints:

    def test_upcoming_notifications(self, client, org, auth_headers, make_task, now):
        task = make_task(deadline=now + timedelta(days=2))
        response = client.get('/api/notifications/upcoming', headers=auth_headers(org['member']))
        assert response.status_code == 200
        assert [item['id'] for item in response.get_json()['tasks']] == [task.id]

    def test_submission_feed_is_for_managers(self, client, org, auth_headers):
        assert client.get('/api/notifications/submissions',
                          headers=auth_headers(org['member'])).status_code == 403
        response = client.get('/api/notifications/submissions', headers=auth_headers(org['manager']))
        assert response.get_json()['pending_count'] == 0

    def test_analytics(self, client, org, auth_headers, make_task, now):
        make_task(status='Done', completed_at=now, completed_before_deadline=True)
        manager = auth_headers(org['manager'])

        productivity = client.get('/api/analytics/productivity?days=7', headers=manager)
        assert productivity.get_json()['productivity']['total_completed'] == 1

        rates = client.get('/api/analytics/completion-rate', headers=manager).get_json()['completion_rates']
        assert rates[0]['rate'] == 100

        performance = client.get(f"/api/team/{org['member'].id}/performance", headers=manager)
        assert performance.get_json()['performance']['on_time_rate'] == 100.0
        assert client.get(f"/api/team/{org['member'].id}/performance",
                          headers=auth_headers(org['member'])).status_code == 403


class TestAppLevel:

    def test_health(self, client):
        assert client.get('/health').get_json()['status'] == 'healthy'

    def test_unknown_route(self, client):
        response = client.get('/api/nothing-here')
        assert response.status_code == 404
        assert response.headers['X-Content-Type-Options'] == 'nosniff'
