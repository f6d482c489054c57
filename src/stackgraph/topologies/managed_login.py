"""
stackgraph.topologies.managed_login — Cognito managed login.
"""

from __future__ import annotations

from typing import Any

from stackgraph.core.declaration import StackDefinition
from stackgraph.core.kinds import ResourceKind
from stackgraph.topology.base import Topology


class ManagedLoginTopology(Topology):
    name = "managed-login"
    version = "1.0.0"
    description = "Cognito user pool with a version 2 managed login page"
    stack_name = "ManagedLoginStack"
    defaults = {
        "userPoolName": "managed-login-user-pool",
        "clientName": "managed-login-user-pool-client",
        "domainPrefix": "managed-login-domain-${AWS::AccountId}",
        "callbackUrl": "https://aws.amazon.com",
        "lang": "ja",
        "selfSignUp": True,
    }

    def define(self, values: dict[str, Any]) -> StackDefinition:
        v = values
        url = v["callbackUrl"]

        stack = StackDefinition(self.stack_name)

        pool = stack.add("ManagedLoginUserPool", ResourceKind.USER_POOL, {
            "UserPoolName": v["userPoolName"],
            "AdminCreateUserConfig": {"AllowAdminCreateUserOnly": not v.get("selfSignUp", True)},
            "AutoVerifiedAttributes": ["email"],
            "UsernameAttributes": ["email"],
            "Schema": [{"Name": "email", "Mutable": True, "Required": True}],
            "AccountRecoverySetting": {
                "RecoveryMechanisms": [{"Name": "verified_email", "Priority": 1}],
            },
        }, deletion_policy="Delete")

        client = stack.add("ManagedLoginUserPoolClient", ResourceKind.USER_POOL_CLIENT, {
            "UserPoolId": pool.ref(),
            "ClientName": v["clientName"],
            "GenerateSecret": True,
            "AllowedOAuthFlows": ["code"],
            "AllowedOAuthFlowsUserPoolClient": True,
            "AllowedOAuthScopes": ["openid"],
            "CallbackURLs": [url],
            "LogoutURLs": [url],
            "SupportedIdentityProviders": ["COGNITO"],
            "PreventUserExistenceErrors": "ENABLED",
        })

        # managed login v2 is only reachable through the raw domain resource
        stack.add("ManagedLoginUserPoolDomain", ResourceKind.USER_POOL_DOMAIN, {
            "Domain": v["domainPrefix"],
            "UserPoolId": pool.ref(),
            "ManagedLoginVersion": 2,
        })
        stack.add("ManagedLoginBranding", ResourceKind.MANAGED_LOGIN_BRANDING, {
            "UserPoolId": pool.ref(),
            "ClientId": client.ref(),
            "UseCognitoProvidedValues": True,
        })

        stack.output(
            "ManagedLoginUrl",
            "https://${ManagedLoginUserPoolDomain}.auth.${AWS::Region}.amazoncognito.com/login"
            f"?lang={v.get('lang', 'ja')}&response_type=code"
            f"&client_id=${{ManagedLoginUserPoolClient}}&redirect_uri={url}",
            description="Hosted managed login page",
        )
        return stack
