"""Tests for test plans, artifacts, service connections, variable groups,
users, notifications, dashboards and branch policies."""

from _fakes import parse

PLANS = 'Contoso/_apis/testplan/plans'


class TestTestPlans:
    async def test_list_plans(self, dispatcher, fake_client):
        fake_client.respond(
            'GET',
            PLANS,
            {
                'value': [
                    {
                        'id': 1,
                        'name': 'Release 1.0',
                        'state': 'Active',
                        'owner': {'displayName': 'Ada'},
                        'rootSuite': {'id': 2},
                        'startDate': '2024-01-01T00:00:00Z',
                    }
                ]
            },
        )

        plans = parse(await dispatcher.call_tool('list_test_plans', {}))

        assert plans == [
            {
                'id': 1,
                'name': 'Release 1.0',
                'state': 'Active',
                'owner': 'Ada',
                'start_date': '2024-01-01T00:00:00.000Z',
                'root_suite_id': 2,
            }
        ]
        assert fake_client.last('GET', PLANS).params['includePlanDetails'] == 'false'

    async def test_suite(self, dispatcher, fake_client):
        fake_client.respond(
            'GET',
            f'{PLANS}/1/suites/3',
            {'id': 3, 'name': 'Checkout', 'suiteType': 'requirementTestSuite', 'parentSuite': {'id': 2}, 'requirementId': 40},
        )

        suite = parse(await dispatcher.call_tool('get_test_suite', {'plan_id': 1, 'suite_id': 3}))

        assert suite == {
            'id': 3,
            'name': 'Checkout',
            'suite_type': 'requirementTestSuite',
            'parent_suite_id': 2,
            'requirement_id': 40,
        }

    async def test_cases(self, dispatcher, fake_client):
        fake_client.respond(
            'GET',
            f'{PLANS}/1/suites/3/testcase',
            {
                'value': [
                    {
                        'workItem': {'id': 100, 'name': 'Pay with card'},
                        'order': 1,
                        'pointAssignments': [
                            {'configurationName': 'Windows 11', 'tester': {'displayName': 'Grace'}}
                        ],
                    }
                ]
            },
        )

        cases = parse(await dispatcher.call_tool('list_test_cases', {'plan_id': 1, 'suite_id': 3}))

        assert cases == [
            {
                'id': 100,
                'name': 'Pay with card',
                'order': 1,
                'point_assignments': [{'configuration': 'Windows 11', 'tester': 'Grace'}],
            }
        ]

    async def test_runs_filtered_by_state(self, dispatcher, fake_client):
        fake_client.respond(
            'GET',
            'Contoso/_apis/test/runs',
            {
                'value': [
                    {'id': 1, 'name': 'Nightly', 'state': 'Completed', 'totalTests': 10, 'passedTests': 9},
                    {'id': 2, 'name': 'Smoke', 'state': 'InProgress'},
                ]
            },
        )

        runs = parse(await dispatcher.call_tool('list_test_runs', {'state': 'completed', 'plan_id': 1}))

        assert [run['id'] for run in runs] == [1]
        assert runs[0]['passed_tests'] == 9
        assert fake_client.last('GET', 'Contoso/_apis/test/runs').params == {'planId': 1, '$top': 50}

    async def test_results_count_outcomes(self, dispatcher, fake_client):
        fake_client.respond(
            'GET',
            'Contoso/_apis/test/runs/1/results',
            {
                'value': [
                    {'id': 1, 'testCaseTitle': 'Login', 'outcome': 'Passed', 'durationInMs': 120.5},
                    {'id': 2, 'testCase': {'name': 'Logout'}, 'outcome': 'Failed', 'errorMessage': 'Timeout'},
                    {'id': 3, 'testCaseTitle': 'Profile', 'outcome': 'Passed'},
                    {'id': 4, 'testCaseTitle': 'Unknown'},
                ]
            },
        )

        results = parse(await dispatcher.call_tool('get_test_results', {'run_id': 1}))

        assert results['total'] == 4
        assert results['outcomes'] == {'Passed': 2, 'Failed': 1, 'Unspecified': 1}
        assert results['results'][1] == {
            'id': 2,
            'test_case': 'Logout',
            'outcome': 'Failed',
            'error_message': 'Timeout',
        }


class TestArtifacts:
    async def test_organization_feeds(self, dispatcher, fake_client):
        fake_client.respond(
            'GET',
            '_apis/packaging/feeds',
            {
                'value': [
                    {
                        'id': 'f1',
                        'name': 'shared',
                        'upstreamEnabled': True,
                        'upstreamSources': [{'name': 'npmjs', 'protocol': 'npm', 'location': 'https://registry.npmjs.org/'}],
                    }
                ]
            },
        )

        feeds = parse(await dispatcher.call_tool('list_feeds', {}))

        assert feeds[0]['upstream_sources'] == [
            {'name': 'npmjs', 'protocol': 'npm', 'location': 'https://registry.npmjs.org/'}
        ]
        assert fake_client.last('GET', '_apis/packaging/feeds').kwargs['host'] == 'feeds'

    async def test_project_feed_packages(self, dispatcher, fake_client):
        path = 'Contoso/_apis/packaging/feeds/internal/packages'
        fake_client.respond(
            'GET',
            path,
            {
                'value': [
                    {
                        'id': 'p1',
                        'name': 'contoso-utils',
                        'protocolType': 'PyPI',
                        'versions': [{'version': '1.0.0'}, {'version': '1.1.0', 'isLatest': True}],
                    },
                    {'id': 'p2', 'name': 'empty', 'protocolType': 'npm', 'versions': []},
                ]
            },
        )

        packages = parse(
            await dispatcher.call_tool(
                'list_packages', {'project': 'Contoso', 'feed_id': 'internal', 'protocol_type': 'pypi'}
            )
        )

        assert packages[0]['latest_version'] == '1.1.0'
        assert 'latest_version' not in packages[1]
        assert fake_client.last('GET', path).params['protocolType'] == 'pypi'

    async def test_package_versions(self, dispatcher, fake_client):
        path = '_apis/packaging/feeds/shared/packages/p1/versions'
        fake_client.respond(
            'GET',
            path,
            {'value': [{'id': 'v1', 'version': '2.0.0', 'isLatest': True, 'views': [{'name': 'Release'}]}]},
        )

        versions = parse(
            await dispatcher.call_tool('get_package_versions', {'feed_id': 'shared', 'package_id': 'p1'})
        )

        assert versions == [{'id': 'v1', 'version': '2.0.0', 'is_latest': True, 'views': ['Release']}]


class TestServiceConnections:
    async def test_credentials_are_not_returned(self, dispatcher, fake_client):
        fake_client.respond(
            'GET',
            'Contoso/_apis/serviceendpoint/endpoints/se1',
            {
                'id': 'se1',
                'name': 'prod-subscription',
                'type': 'azurerm',
                'url': 'https://management.azure.com/',
                'isReady': True,
                'authorization': {'scheme': 'ServicePrincipal', 'parameters': {'serviceprincipalkey': 'hunter2'}},
                'data': {'subscriptionId': 'sub-1'},
            },
        )

        result = await dispatcher.call_tool('get_service_connection', {'connection_id': 'se1'})

        connection = parse(result)
        assert connection['authorization_scheme'] == 'ServicePrincipal'
        assert connection['data'] == {'subscriptionId': 'sub-1'}
        assert 'hunter2' not in result.content[0].text

    async def test_list_by_type(self, dispatcher, fake_client):
        fake_client.respond('GET', 'Contoso/_apis/serviceendpoint/endpoints', {'value': []})
        await dispatcher.call_tool('list_service_connections', {'type': 'github'})
        assert fake_client.last('GET', 'Contoso/_apis/serviceendpoint/endpoints').params == {'type': 'github'}


class TestVariableGroups:
    async def test_secrets_are_masked(self, dispatcher, fake_client):
        fake_client.respond(
            'GET',
            'Contoso/_apis/distributedtask/variablegroups/4',
            {
                'id': 4,
                'name': 'prod',
                'type': 'Vsts',
                'variables': {
                    'region': {'value': 'westeurope'},
                    'dbPassword': {'value': 'hunter2', 'isSecret': True},
                },
            },
        )

        result = await dispatcher.call_tool('get_variable_group', {'group_id': 4})

        group = parse(result)
        assert group['variable_count'] == 2
        assert group['variables'] == {
            'region': {'value': 'westeurope', 'is_secret': False},
            'dbPassword': {'value': '***', 'is_secret': True},
        }
        assert 'hunter2' not in result.content[0].text

    async def test_list(self, dispatcher, fake_client):
        fake_client.respond(
            'GET',
            'Contoso/_apis/distributedtask/variablegroups',
            {'value': [{'id': 4, 'name': 'prod', 'variables': {'a': {'value': '1'}}}]},
        )

        groups = parse(await dispatcher.call_tool('list_variable_groups', {'group_name': 'pr*'}))

        assert groups == [{'id': 4, 'name': 'prod', 'description': '', 'variable_count': 1}]


class TestUsers:
    async def test_current_user(self, dispatcher, fake_client):
        fake_client.respond(
            'GET',
            '_apis/connectionData',
            {
                'authenticatedUser': {
                    'id': 'u1',
                    'providerDisplayName': 'Ada Lovelace',
                    'properties': {'Account': {'$type': 'System.String', '$value': 'ada@contoso.com'}},
                },
                'locationServiceData': {'accessMappings': [{'accessPoint': 'https://dev.azure.com/contoso/'}]},
            },
        )

        user = parse(await dispatcher.call_tool('get_current_user', {}))

        assert user == {
            'id': 'u1',
            'display_name': 'Ada Lovelace',
            'email': 'ada@contoso.com',
            'url': 'https://dev.azure.com/contoso/',
        }

    async def test_lookup_by_email(self, dispatcher, fake_client):
        fake_client.respond('GET', '_apis/identities', {'value': [{'id': 'u2', 'providerDisplayName': 'Grace'}]})

        user = parse(await dispatcher.call_tool('get_user', {'user_id': 'grace@contoso.com'}))

        assert user == {'id': 'u2', 'display_name': 'Grace'}
        call = fake_client.last('GET', '_apis/identities')
        assert call.kwargs['host'] == 'vssps'
        assert call.params == {'searchFilter': 'MailAddress', 'filterValue': 'grace@contoso.com'}

    async def test_lookup_by_id_not_found(self, dispatcher, fake_client):
        fake_client.respond('GET', '_apis/identities', {'value': [None]})
        result = await dispatcher.call_tool('get_user', {'user_id': 'missing-id'})
        assert parse(result) == {'error': 'User missing-id not found'}
        assert fake_client.last('GET', '_apis/identities').params == {'identityIds': 'missing-id'}

    async def test_search_is_capped(self, dispatcher, fake_client):
        fake_client.respond(
            'GET',
            '_apis/identities',
            {'value': [{'id': f'u{i}', 'providerDisplayName': f'User {i}'} for i in range(5)]},
        )

        users = parse(await dispatcher.call_tool('search_users', {'query': 'user', 'max_results': 3}))

        assert [u['id'] for u in users] == ['u0', 'u1', 'u2']


async def test_subscriptions(dispatcher, fake_client):
    fake_client.respond(
        'GET',
        '_apis/notification/subscriptions',
        {
            'value': [
                {
                    'id': '42',
                    'description': 'Build failures',
                    'status': 'enabled',
                    'subscriber': {'displayName': 'Web Team'},
                    'filter': {'eventType': 'ms.vss-build.build-completed-event'},
                    'channel': {'type': 'EmailHtml'},
                }
            ]
        },
    )

    subscriptions = parse(await dispatcher.call_tool('list_subscriptions', {'target_id': 't1'}))

    assert subscriptions == [
        {
            'id': '42',
            'description': 'Build failures',
            'status': 'enabled',
            'subscriber': 'Web Team',
            'event_type': 'ms.vss-build.build-completed-event',
            'channel': 'EmailHtml',
            'url': '',
        }
    ]
    assert fake_client.last('GET', '_apis/notification/subscriptions').params == {'targetId': 't1'}


class TestDashboards:
    async def test_team_dashboards(self, dispatcher, fake_client):
        path = 'Contoso/Web%20Team/_apis/dashboard/dashboards'
        fake_client.respond('GET', path, {'value': [{'id': 'd1', 'name': 'Overview', 'position': 1}]})

        dashboards = parse(await dispatcher.call_tool('list_dashboards', {'team': 'Web Team'}))

        assert dashboards == [{'id': 'd1', 'name': 'Overview', 'position': 1, 'url': ''}]
        assert fake_client.last('GET', path).kwargs['api_version'] == '7.1-preview.3'

    async def test_dashboard_widgets(self, dispatcher, fake_client):
        fake_client.respond(
            'GET',
            'Contoso/_apis/dashboard/dashboards/d1',
            {
                'id': 'd1',
                'name': 'Overview',
                'widgets': [
                    {'id': 'w1', 'name': 'Burndown', 'contributionId': 'ms.vss-dashboards-web.Burndown', 'size': {'rowSpan': 2, 'columnSpan': 3}}
                ],
            },
        )

        dashboard = parse(await dispatcher.call_tool('get_dashboard', {'dashboard_id': 'd1'}))

        assert dashboard['widgets'] == [
            {
                'id': 'w1',
                'name': 'Burndown',
                'contribution_id': 'ms.vss-dashboards-web.Burndown',
                'size': {'rowSpan': 2, 'columnSpan': 3},
            }
        ]


class TestPolicies:
    POLICY = {
        'id': 7,
        'type': {'id': 'fa4e907d', 'displayName': 'Minimum number of reviewers'},
        'isEnabled': True,
        'isBlocking': True,
        'settings': {
            'minimumApproverCount': 2,
            'scope': [{'repositoryId': 'repo-id', 'refName': 'refs/heads/main', 'matchKind': 'exact'}],
        },
    }

    async def test_list_resolves_repository_id(self, dispatcher, fake_client):
        fake_client.respond('GET', 'Contoso/_apis/git/repositories/web', {'id': 'repo-id', 'name': 'web'})
        fake_client.respond('GET', 'Contoso/_apis/policy/configurations', {'value': [self.POLICY]})

        policies = parse(
            await dispatcher.call_tool('list_branch_policies', {'repository': 'web', 'branch': 'main'})
        )

        assert policies[0]['type'] == 'Minimum number of reviewers'
        assert policies[0]['settings'] == {'minimumApproverCount': 2}
        assert policies[0]['scope'] == [
            {'repository_id': 'repo-id', 'ref_name': 'refs/heads/main', 'match_kind': 'exact'}
        ]
        assert fake_client.last('GET', 'Contoso/_apis/policy/configurations').params == {
            'repositoryId': 'repo-id',
            'refName': 'refs/heads/main',
        }

    async def test_get_policy(self, dispatcher, fake_client):
        fake_client.respond('GET', 'Contoso/_apis/policy/configurations/7', self.POLICY)
        policy = parse(await dispatcher.call_tool('get_branch_policy', {'policy_id': 7}))
        assert policy['is_blocking'] is True
        assert policy['type_id'] == 'fa4e907d'
