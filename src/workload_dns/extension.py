"""
Lets a custom resource add the resources it depends on to a troposphere Template

Importing this module patches ``Template.add_resource``. Adding a :class:`TemplateExtension`
to a template calls its :meth:`~TemplateExtension.add_extension` instead, which adds the
Lambda function and role behind the custom resource as well as the resource itself.

``Template.add_resource`` also takes a list, which may mix extensions and plain resources.

"""

import wrapt


class TemplateExtension:
    def add_extension(self, template, add_resource):
        """
        Add this custom resource to the template

        The implementation adds the function and role this resource is backed by,
        then the resource itself using add_resource.

        :param template: The template to add this resource to
        :param add_resource: The unpatched add_resource of the template
        :returns: The added resource
        """
        raise NotImplementedError('Custom resources must add their backing resources to the template')


def add_one(template, add_resource, resource):
    if isinstance(resource, TemplateExtension):
        return resource.add_extension(template, add_resource)
    return add_resource(resource)


@wrapt.patch_function_wrapper('troposphere', 'Template.add_resource')
def wrapper(wrapped, instance, args, kwargs):
    def get_resource(resource):
        return resource

    resource = get_resource(*args, **kwargs)

    if isinstance(resource, list):
        return [add_one(instance, wrapped, each) for each in resource]

    return add_one(instance, wrapped, resource)
